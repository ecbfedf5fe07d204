"""Exception hierarchy shared across Songbird components."""

from __future__ import annotations

from typing import Optional


class SongbirdError(RuntimeError):
    """Base class for errors raised by Songbird."""


class ConfigError(SongbirdError):
    """Raised when configuration files cannot be parsed or are invalid."""


class LocationLookupError(SongbirdError):
    """Raised when a location signal cannot be turned into a location."""


class LocationConfigurationError(SongbirdError):
    """Raised when no tier, not even the placeholder, can produce a location."""


class CacheUnavailableError(SongbirdError):
    """Raised when the update cache backend cannot be read or written."""


class SelectionError(SongbirdError):
    """Raised when the bird selector fails to pick a bird for a location."""


class PublishError(SongbirdError):
    """Raised when refreshed content cannot be published to the card."""


class YotoRateLimitError(PublishError):
    """Raised when the Yoto API responds with a 429 rate limit."""

    def __init__(self, retry_after: Optional[int], message: str) -> None:
        super().__init__(message)
        self.retry_after = retry_after
