"""Tile rendering engine: geometry, raster reads, styling and encoding."""
