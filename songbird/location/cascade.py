"""Ordered fallback policy turning imperfect signals into one location."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from ..errors import LocationConfigurationError, LocationLookupError
from ..logging import get_logger
from ..models import Location, Resolution, ResolutionTier, TriggerKind
from .ip import unwrap_client_ip
from .rotation import GlobalRotationSource


class IPLocationResolver(Protocol):
    def resolve(self, ip: Optional[str]) -> Location:
        """Return the location for ``ip`` or raise ``LocationLookupError``."""


class TimezoneResolver(Protocol):
    def resolve(self, timezone: Optional[str]) -> Location:
        """Return a location for ``timezone``; unknown ids map to the placeholder."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationCascade:
    """Resolve a location through the IP, timezone and fallback tiers.

    The IP tier never accepts the placeholder. The timezone tier accepts it
    only when the device timezone is the placeholder's own zone, which means
    the device genuinely is there rather than geolocation having defaulted.
    """

    def __init__(
        self,
        ip_resolver: IPLocationResolver,
        timezone_resolver: TimezoneResolver,
        rotation: GlobalRotationSource,
        placeholder: Location,
        placeholder_timezone: str,
        *,
        placeholder_fallback: bool = True,
        trust_forwarded_for: bool = True,
        rotation_timezone: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.ip_resolver = ip_resolver
        self.timezone_resolver = timezone_resolver
        self.rotation = rotation
        self.placeholder = placeholder.as_placeholder()
        self.placeholder_timezone = placeholder_timezone
        self.placeholder_fallback = placeholder_fallback
        self.trust_forwarded_for = trust_forwarded_for
        self.clock = clock
        self.logger = logger or get_logger("songbird.cascade")
        self.rotation_zone = self._rotation_zone(rotation_timezone)

    def resolve(
        self,
        trigger: TriggerKind,
        client_ip: Optional[str],
        device_timezone: Optional[str],
        forwarded_for: Optional[str] = None,
    ) -> Resolution:
        ip = unwrap_client_ip(client_ip, forwarded_for if self.trust_forwarded_for else None)

        location = self._try_ip(ip)
        if location is not None:
            return Resolution(location=location, tier=ResolutionTier.IP)

        location = self._try_timezone(device_timezone)
        if location is not None:
            return Resolution(location=location, tier=ResolutionTier.TIMEZONE)

        return self._fallback(trigger, ip, device_timezone)

    def _rotation_zone(self, tz_name: str) -> ZoneInfo:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            self.logger.warning("cascade.rotation_timezone_fallback", configured=tz_name, using="UTC")
            return ZoneInfo("UTC")

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------
    def _try_ip(self, ip: Optional[str]) -> Optional[Location]:
        if not ip:
            self.logger.info("cascade.ip_missing")
            return None
        try:
            location = self.ip_resolver.resolve(ip)
        except LocationLookupError as exc:
            self.logger.info("cascade.ip_failed", ip=ip, error=str(exc))
            return None

        if location.placeholder:
            self.logger.info("cascade.ip_placeholder", ip=ip, city=location.city)
            return None

        self.logger.info("cascade.ip_resolved", ip=ip, city=location.city, country=location.country)
        return location

    def _try_timezone(self, device_timezone: Optional[str]) -> Optional[Location]:
        zone = (device_timezone or "").strip()
        if not zone:
            return None

        location = self.timezone_resolver.resolve(zone)
        if location.placeholder and zone != self.placeholder_timezone:
            self.logger.info("cascade.timezone_placeholder", timezone=zone)
            return None

        self.logger.info("cascade.timezone_resolved", timezone=zone, city=location.city, country=location.country)
        return location

    def _fallback(self, trigger: TriggerKind, ip: Optional[str], device_timezone: Optional[str]) -> Resolution:
        if trigger is TriggerKind.SCHEDULED:
            today = self.clock().astimezone(self.rotation_zone).date()
            location = self.rotation.location_for(today)
            self.logger.info("cascade.rotation", city=location.city, day=today.isoformat())
            return Resolution(location=location, tier=ResolutionTier.ROTATION)

        if not self.placeholder_fallback:
            raise LocationConfigurationError(
                "No location could be resolved and the placeholder fallback is disabled"
            )

        self.logger.warning(
            "cascade.placeholder_default",
            ip=ip,
            timezone=device_timezone,
            city=self.placeholder.city,
            trigger=trigger.value,
        )
        return Resolution(location=self.placeholder, tier=ResolutionTier.DEFAULT, is_fallback_default=True)
