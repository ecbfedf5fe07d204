"""IP geolocation against an ip-api.com compatible endpoint."""

from __future__ import annotations

import ipaddress
from typing import Optional

import requests

from ..errors import LocationLookupError
from ..models import Location, location_key


def _is_unusable(ip: Optional[str]) -> bool:
    if not ip:
        return True
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return True
    return address.is_loopback or address.is_unspecified


def unwrap_client_ip(client_ip: Optional[str], forwarded_for: Optional[str] = None) -> Optional[str]:
    """Return the address worth geolocating.

    Behind a reverse proxy the socket peer is loopback, so the first entry of
    ``X-Forwarded-For`` names the real client.
    """

    if client_ip and not _is_unusable(client_ip):
        return client_ip.strip()
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first and not _is_unusable(first):
            return first
    return client_ip.strip() if client_ip else None


class GeoIPResolver:
    """Map a client IP to a best-effort location.

    A result that lands on the placeholder location is returned tagged as the
    placeholder: geolocation services report that place for addresses they
    cannot place, so it is not evidence of where the device is.
    """

    def __init__(
        self,
        placeholder: Location,
        url_template: str = "http://ip-api.com/json/{ip}",
        timeout: float = 5.0,
        precision: int = 1,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.placeholder = placeholder
        self.url_template = url_template
        self.timeout = timeout
        self.precision = precision
        self.session = session or requests.Session()

    def resolve(self, ip: Optional[str]) -> Location:
        if _is_unusable(ip):
            raise LocationLookupError(f"Invalid IP address for geolocation: {ip!r}")

        url = self.url_template.format(ip=ip)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise LocationLookupError(f"Failed to get IP location: {exc}") from exc
        except ValueError as exc:
            raise LocationLookupError("Failed to decode location response") from exc

        if not isinstance(payload, dict):
            raise LocationLookupError("IP location response is not a JSON object")

        if payload.get("status") != "success":
            raise LocationLookupError(f"IP geolocation failed: {payload.get('message', 'unknown error')}")

        try:
            location = Location(
                latitude=float(payload["lat"]),
                longitude=float(payload["lon"]),
                city=payload.get("city") or "",
                region=payload.get("regionName") or "",
                country=payload.get("country") or "",
                ip_address=ip,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LocationLookupError("IP location response is missing coordinates") from exc

        if self._matches_placeholder(location):
            return location.as_placeholder()
        return location

    def _matches_placeholder(self, location: Location) -> bool:
        return location_key(location.latitude, location.longitude, self.precision) == location_key(
            self.placeholder.latitude, self.placeholder.longitude, self.precision
        )
