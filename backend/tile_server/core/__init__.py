"""Settings and error types shared across the tile server."""
