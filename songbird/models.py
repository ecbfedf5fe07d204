"""Domain types passed between the cascade, the cache and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class TriggerKind(str, Enum):
    """Who asked for a refresh. Decides the last tier of the cascade."""

    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"
    MANUAL = "manual"

    @property
    def interactive(self) -> bool:
        return self is not TriggerKind.SCHEDULED


class ResolutionTier(str, Enum):
    IP = "ip"
    TIMEZONE = "timezone"
    ROTATION = "rotation"
    DEFAULT = "default"


class RefreshOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_UPDATED = "already_updated"
    ERROR = "error"


@dataclass(frozen=True)
class Location:
    """A resolved place.

    ``placeholder`` marks the designated default location. Resolvers set it
    whenever their answer is that default so callers never have to compare
    display names.
    """

    latitude: float
    longitude: float
    city: str = ""
    region: str = ""
    country: str = ""
    ip_address: Optional[str] = None
    placeholder: bool = False

    def with_ip(self, ip_address: Optional[str]) -> "Location":
        return replace(self, ip_address=ip_address)

    def as_placeholder(self) -> "Location":
        return replace(self, placeholder=True)

    @property
    def label(self) -> str:
        parts = [part for part in (self.city, self.country) if part]
        return ", ".join(parts) if parts else f"{self.latitude:.4f}, {self.longitude:.4f}"


def location_key(latitude: float, longitude: float, precision: int = 1) -> str:
    """Coarse identifier for a place; nearby coordinates share a key.

    One decimal place groups points within roughly 11 km.
    """

    lat = round(latitude, precision) + 0.0
    lng = round(longitude, precision) + 0.0
    return f"{lat:.{precision}f}_{lng:.{precision}f}"


@dataclass(frozen=True)
class Resolution:
    location: Location
    tier: ResolutionTier
    is_fallback_default: bool = False


@dataclass(frozen=True)
class BirdDescriptor:
    """What the bird selector hands back for a location."""

    common_name: str
    audio_url: str
    description: str = ""
    scientific_name: Optional[str] = None
    icon_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BirdDescriptor":
        name = payload.get("common_name") or payload.get("commonName")
        audio = payload.get("audio_url") or payload.get("audioUrl")
        if not name or not audio:
            raise ValueError("Bird payload must include a common name and an audio URL")
        return cls(
            common_name=str(name),
            audio_url=str(audio),
            description=str(payload.get("description") or ""),
            scientific_name=payload.get("scientific_name") or payload.get("scientificName"),
            icon_url=payload.get("icon_url") or payload.get("iconUrl"),
        )


@dataclass(frozen=True)
class IntroReference:
    """Intro track published ahead of the bird song, and its narrator voice."""

    url: str
    voice: str = ""


@dataclass(frozen=True)
class RefreshRecord:
    """This card was refreshed for this place on this local day."""

    card_id: str
    local_date: str
    location_key: str
    bird_name: str
    created_at: str
    city: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "card_id": self.card_id,
            "local_date": self.local_date,
            "location_key": self.location_key,
            "bird_name": self.bird_name,
            "created_at": self.created_at,
        }
        if self.city:
            payload["city"] = self.city
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RefreshRecord":
        return cls(
            card_id=str(payload["card_id"]),
            local_date=str(payload["local_date"]),
            location_key=str(payload["location_key"]),
            bird_name=str(payload["bird_name"]),
            created_at=str(payload.get("created_at") or ""),
            city=payload.get("city"),
        )


@dataclass(frozen=True)
class RefreshRequest:
    trigger: TriggerKind
    card_id: Optional[str] = None
    client_ip: Optional[str] = None
    forwarded_for: Optional[str] = None
    device_timezone: Optional[str] = None
    device_id: Optional[str] = None


@dataclass
class RefreshResult:
    """Structured response returned to whichever trigger asked for the refresh."""

    outcome: RefreshOutcome
    card_id: Optional[str] = None
    bird: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    timezone: Optional[str] = None
    tier: Optional[ResolutionTier] = None
    message: Optional[str] = None
    warning: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not RefreshOutcome.ERROR

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.outcome.value,
            "card_id": self.card_id,
            "bird": self.bird,
            "location": self.location,
            "date": self.date,
        }
        if self.timezone:
            payload["timezone"] = self.timezone
        if self.tier is not None:
            payload["tier"] = self.tier.value
        if self.message:
            payload["message"] = self.message
        if self.warning:
            payload["warning"] = self.warning
        if self.error:
            payload["error"] = self.error
        return payload
