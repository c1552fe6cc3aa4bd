"""Sidebot bridge — relay between the Sidebot Figma plugin and Claude."""

__version__ = "0.2.0"
