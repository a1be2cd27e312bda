"""Stylecat - catalog manager for AI image-generation style presets."""

__version__ = "0.1.0"
