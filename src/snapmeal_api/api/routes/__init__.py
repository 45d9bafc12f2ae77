"""API routes."""

from . import analysis, images, providers

__all__ = ["analysis", "images", "providers"]
