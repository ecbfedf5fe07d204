"""Authentication helpers for Songbird."""

from .yoto import YotoClientFactory, YotoClientSettings

__all__ = [
    "YotoClientFactory",
    "YotoClientSettings",
]
