"""Clients for the services Songbird talks to."""

from .bird_selector import HttpBirdSelector
from .yoto_client import YotoService

__all__ = [
    "HttpBirdSelector",
    "YotoService",
]
