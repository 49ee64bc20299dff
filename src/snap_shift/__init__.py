"""
SnapShift Conversion Service package.

This module provides a FastAPI application exposing REST endpoints that
convert images between formats, wrap images into a PDF and rasterize PDF
pages into a zip of images.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
