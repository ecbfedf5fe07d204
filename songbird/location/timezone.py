"""Approximate a location from a device timezone identifier."""

from __future__ import annotations

import re
from typing import Dict, Optional

from ..models import Location


def _loc(city: str, region: str, country: str, latitude: float, longitude: float) -> Location:
    return Location(latitude=latitude, longitude=longitude, city=city, region=region, country=country)


TIMEZONE_LOCATIONS: Dict[str, Location] = {
    # United States
    "America/New_York": _loc("New York", "New York", "United States", 40.7128, -74.0060),
    "America/Chicago": _loc("Chicago", "Illinois", "United States", 41.8781, -87.6298),
    "America/Denver": _loc("Denver", "Colorado", "United States", 39.7392, -104.9903),
    "America/Los_Angeles": _loc("Los Angeles", "California", "United States", 34.0522, -118.2437),
    "America/Phoenix": _loc("Phoenix", "Arizona", "United States", 33.4484, -112.0740),
    "America/Anchorage": _loc("Anchorage", "Alaska", "United States", 61.2181, -149.9003),
    "Pacific/Honolulu": _loc("Honolulu", "Hawaii", "United States", 21.3099, -157.8581),
    # Canada
    "America/Toronto": _loc("Toronto", "Ontario", "Canada", 43.6532, -79.3832),
    "America/Vancouver": _loc("Vancouver", "British Columbia", "Canada", 49.2827, -123.1207),
    "America/Halifax": _loc("Halifax", "Nova Scotia", "Canada", 44.6488, -63.5752),
    # Europe
    "Europe/London": _loc("London", "England", "United Kingdom", 51.5074, -0.1278),
    "Europe/Paris": _loc("Paris", "Île-de-France", "France", 48.8566, 2.3522),
    "Europe/Berlin": _loc("Berlin", "Berlin", "Germany", 52.5200, 13.4050),
    "Europe/Madrid": _loc("Madrid", "Madrid", "Spain", 40.4168, -3.7038),
    "Europe/Rome": _loc("Rome", "Lazio", "Italy", 41.9028, 12.4964),
    "Europe/Amsterdam": _loc("Amsterdam", "North Holland", "Netherlands", 52.3676, 4.9041),
    "Europe/Stockholm": _loc("Stockholm", "Stockholm", "Sweden", 59.3293, 18.0686),
    # Australia and New Zealand
    "Australia/Sydney": _loc("Sydney", "New South Wales", "Australia", -33.8688, 151.2093),
    "Australia/Melbourne": _loc("Melbourne", "Victoria", "Australia", -37.8136, 144.9631),
    "Australia/Brisbane": _loc("Brisbane", "Queensland", "Australia", -27.4698, 153.0251),
    "Australia/Perth": _loc("Perth", "Western Australia", "Australia", -31.9505, 115.8605),
    "Pacific/Auckland": _loc("Auckland", "Auckland", "New Zealand", -36.8485, 174.7633),
    # Asia
    "Asia/Tokyo": _loc("Tokyo", "Tokyo", "Japan", 35.6762, 139.6503),
    "Asia/Shanghai": _loc("Shanghai", "Shanghai", "China", 31.2304, 121.4737),
    "Asia/Singapore": _loc("Singapore", "Singapore", "Singapore", 1.3521, 103.8198),
    "Asia/Dubai": _loc("Dubai", "Dubai", "United Arab Emirates", 25.2048, 55.2708),
    # Latin America
    "America/Sao_Paulo": _loc("São Paulo", "São Paulo", "Brazil", -23.5505, -46.6333),
    "America/Buenos_Aires": _loc("Buenos Aires", "Buenos Aires", "Argentina", -34.6037, -58.3816),
    "America/Mexico_City": _loc("Mexico City", "Mexico City", "Mexico", 19.4326, -99.1332),
}

_ABBREVIATIONS = {
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
}

_KEYWORDS = (
    ("Eastern", "America/New_York"),
    ("Central", "America/Chicago"),
    ("Mountain", "America/Denver"),
    ("Pacific", "America/Los_Angeles"),
)

_OFFSET_PATTERN = re.compile(r"^(?:GMT|UTC)\s*([+-])\s*(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)

_OFFSET_ZONES = {
    -8: "America/Los_Angeles",
    -7: "America/Denver",
    -6: "America/Chicago",
    -5: "America/New_York",
    0: "Europe/London",
    1: "Europe/Paris",
    9: "Asia/Tokyo",
    10: "Australia/Sydney",
}


class TimezoneLocationResolver:
    """Map IANA timezone ids (and common aliases) to a representative city.

    Never raises. Identifiers that cannot be mapped, and ids whose
    representative city is the placeholder, come back tagged as the
    placeholder.
    """

    def __init__(self, placeholder: Location, table: Optional[Dict[str, Location]] = None) -> None:
        self.placeholder = placeholder.as_placeholder()
        self.table = dict(TIMEZONE_LOCATIONS if table is None else table)

    def resolve(self, timezone: Optional[str]) -> Location:
        zone_id = self.canonical_zone(timezone)
        if zone_id is None:
            return self.placeholder
        location = self.table[zone_id]
        if self._is_placeholder_city(location):
            return self.placeholder
        return location

    def canonical_zone(self, timezone: Optional[str]) -> Optional[str]:
        """Return the table key an identifier maps to, if any."""

        name = (timezone or "").strip()
        if not name:
            return None
        if name in self.table:
            return name

        alias = _ABBREVIATIONS.get(name.upper())
        if alias is None:
            for keyword, zone in _KEYWORDS:
                if keyword in name:
                    alias = zone
                    break
        if alias is None:
            alias = self._offset_zone(name)
        if alias is not None and alias in self.table:
            return alias
        return None

    @staticmethod
    def _offset_zone(name: str) -> Optional[str]:
        match = _OFFSET_PATTERN.match(name)
        if not match:
            return None
        sign, hours, _minutes = match.groups()
        offset = int(hours) * (-1 if sign == "-" else 1)
        return _OFFSET_ZONES.get(offset)

    def _is_placeholder_city(self, location: Location) -> bool:
        return (location.latitude, location.longitude) == (self.placeholder.latitude, self.placeholder.longitude)
