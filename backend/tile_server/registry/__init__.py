"""Registry of named raster and vector map layers."""

from tile_server.registry.models import MapEntry, MapMetadata, MapRegistration
from tile_server.registry.registry import MapRegistry

__all__ = ["MapEntry", "MapMetadata", "MapRegistration", "MapRegistry"]
