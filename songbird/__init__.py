"""Songbird: daily location-aware refreshes for a Yoto bird-song card."""

__version__ = "0.1.0"
