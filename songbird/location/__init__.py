"""Location resolution tiers and the cascade that orders them."""

from .cascade import IPLocationResolver, LocationCascade, TimezoneResolver
from .ip import GeoIPResolver, unwrap_client_ip
from .rotation import GlobalRotationSource
from .timezone import TIMEZONE_LOCATIONS, TimezoneLocationResolver

__all__ = [
    "GeoIPResolver",
    "GlobalRotationSource",
    "IPLocationResolver",
    "LocationCascade",
    "TIMEZONE_LOCATIONS",
    "TimezoneLocationResolver",
    "TimezoneResolver",
    "unwrap_client_ip",
]
