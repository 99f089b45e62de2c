"""Raster analytics: compositing, cover fraction and region statistics."""
