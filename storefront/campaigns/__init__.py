"""Video campaign scheduling and quick-ad overlays."""
