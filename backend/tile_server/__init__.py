"""XYZ tile server for raster and vector map layers."""

__version__ = "0.1.0"
