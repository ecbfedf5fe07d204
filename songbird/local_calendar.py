"""Local calendar day for a resolved location."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from timezonefinder import TimezoneFinder

from .logging import get_logger
from .models import Location

FALLBACK_TIMEZONE = "UTC"


class GeoTimezoneResolver(Protocol):
    def timezone_at(self, latitude: float, longitude: float) -> Optional[str]:
        """Return the IANA timezone id covering the coordinates, if known."""


class TimezoneFinderResolver:
    """Geo→timezone lookup backed by ``timezonefinder``'s polygon index."""

    def __init__(self, finder: Optional[TimezoneFinder] = None) -> None:
        self._finder = finder

    @property
    def finder(self) -> TimezoneFinder:
        if self._finder is None:
            self._finder = TimezoneFinder(in_memory=True)
        return self._finder

    def timezone_at(self, latitude: float, longitude: float) -> Optional[str]:
        name = self.finder.timezone_at(lng=longitude, lat=latitude)
        if not name:
            name = self.finder.certain_timezone_at(lng=longitude, lat=latitude)
        return str(name).strip() if name else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalCalendar:
    """Compute the calendar day as observed at a location.

    Dates are plain ``YYYY-MM-DD`` strings so two calls on the same local day
    compare equal whatever second they ran at.
    """

    def __init__(
        self,
        resolver: GeoTimezoneResolver,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.resolver = resolver
        self.clock = clock
        self.logger = logger or get_logger("songbird.calendar")

    def zone_for(self, location: Location) -> ZoneInfo:
        try:
            name = self.resolver.timezone_at(location.latitude, location.longitude)
        except (ValueError, RuntimeError) as exc:
            self.logger.warning(
                "calendar.lookup_failed",
                latitude=location.latitude,
                longitude=location.longitude,
                error=str(exc),
            )
            name = None

        if name:
            try:
                return ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError):
                self.logger.warning("calendar.unknown_zone", timezone=name)

        self.logger.info(
            "calendar.utc_fallback",
            latitude=location.latitude,
            longitude=location.longitude,
        )
        return ZoneInfo(FALLBACK_TIMEZONE)

    def local_date(self, location: Location) -> Tuple[str, str]:
        zone = self.zone_for(location)
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(zone).date().isoformat(), zone.key
