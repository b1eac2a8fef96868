"""API router subpackage for the tile server.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - maps: Endpoints for registering, listing, describing and removing
      map layers.
    - tiles: The ``/{name}/{z}/{x}/{y}.{ext}`` XYZ tile endpoint.
    - preview: The ``/{name}`` Leaflet preview page.

The tile and preview routes match any four- and one-segment path, so the
application includes them after every other router.
"""
