"""Configuration models and helpers for Songbird."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_PLACEHOLDER_VALUE = "SET_ME"
CONFIG_DIR_ENV = "SONGBIRD_CONFIG_DIR"


@dataclass(frozen=True)
class BootstrapReport:
    """Summary of files/directories created during initialisation."""

    base_created: bool
    state_dir_created: bool
    global_config_created: bool
    global_config_overwritten: bool


@dataclass(frozen=True)
class ConfigPaths:
    """Resolved filesystem locations used by the application."""

    base_dir: Path
    global_config: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        """Return default locations under the user's home directory."""

        env_value = os.getenv(CONFIG_DIR_ENV)
        if env_value:
            return cls.from_base_dir(Path(env_value))
        return cls.from_base_dir(Path.home() / ".songbird")

    @classmethod
    def from_base_dir(cls, base_dir: Path) -> "ConfigPaths":
        """Construct paths using ``base_dir`` as root."""

        base_dir = base_dir.expanduser()
        return cls(base_dir=base_dir, global_config=base_dir / "config.yml")

    @property
    def state_dir(self) -> Path:
        """Default directory for the update cache and other runtime files."""

        return self.base_dir / "state"


class YotoSettings(BaseModel):
    """Yoto API credentials and the card refreshed by default."""

    client_id: str = Field(default=DEFAULT_PLACEHOLDER_VALUE)
    access_token: str = Field(default=DEFAULT_PLACEHOLDER_VALUE)
    api_base_url: str = Field(default="https://api.yotoplay.com")
    default_card_id: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0.0)

    model_config = ConfigDict(extra="forbid")


class SelectorSettings(BaseModel):
    """Bird-of-the-day service used to pick content for a location."""

    base_url: str = Field(default="http://localhost:8081/api/v1")
    timeout_seconds: float = Field(default=30.0, gt=0.0)

    model_config = ConfigDict(extra="forbid")


class ServerSettings(BaseModel):
    """HTTP server options."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    scheduler_token: Optional[str] = None
    environment: str = Field(default="development")
    base_url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PlaceSettings(BaseModel):
    """A named point used for placeholders and rotation entries."""

    city: str
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    region: str = ""
    country: str = ""

    model_config = ConfigDict(extra="forbid")


class PlaceholderSettings(PlaceSettings):
    """Designated default location and the one timezone that genuinely maps to it."""

    timezone: str = Field(default="Europe/London")


def _default_placeholder() -> PlaceholderSettings:
    return PlaceholderSettings(
        city="London",
        region="England",
        country="United Kingdom",
        latitude=51.5074,
        longitude=-0.1278,
        timezone="Europe/London",
    )


def _place(city: str, latitude: float, longitude: float, country: str = "") -> PlaceSettings:
    return PlaceSettings(city=city, region=city, country=country, latitude=latitude, longitude=longitude)


def default_rotation() -> List[PlaceSettings]:
    """Diverse fallback locations for scheduled sweeps without a usable signal."""

    return [
        _place("New York", 40.7128, -74.0060, "United States"),
        _place("Los Angeles", 34.0522, -118.2437, "United States"),
        _place("Chicago", 41.8781, -87.6298, "United States"),
        _place("Houston", 29.7604, -95.3698, "United States"),
        _place("Phoenix", 33.4484, -112.0740, "United States"),
        _place("Denver", 39.7392, -104.9903, "United States"),
        _place("Seattle", 47.6062, -122.3321, "United States"),
        _place("Miami", 25.7617, -80.1918, "United States"),
        _place("Boston", 42.3601, -71.0589, "United States"),
        _place("San Francisco", 37.7749, -122.4194, "United States"),
        _place("Toronto", 43.6532, -79.3832, "Canada"),
        _place("Montreal", 45.5017, -73.5673, "Canada"),
        _place("Vancouver", 49.2827, -123.1207, "Canada"),
        _place("Calgary", 51.0447, -114.0719, "Canada"),
        _place("Edmonton", 53.5461, -113.4938, "Canada"),
        _place("Ottawa", 45.4215, -75.6972, "Canada"),
        _place("London", 51.5074, -0.1278, "United Kingdom"),
        _place("Manchester", 53.4808, -2.2426, "United Kingdom"),
        _place("Edinburgh", 55.9533, -3.1883, "United Kingdom"),
        _place("Birmingham", 52.4862, -1.8904, "United Kingdom"),
        _place("Bristol", 51.4545, -2.5879, "United Kingdom"),
        _place("Leeds", 53.8008, -1.5491, "United Kingdom"),
        _place("Mexico City", 19.4326, -99.1332, "Mexico"),
        _place("Guadalajara", 20.6597, -103.3496, "Mexico"),
        _place("Monterrey", 25.6866, -100.3161, "Mexico"),
        _place("Cancun", 21.1619, -86.8515, "Mexico"),
        _place("Tijuana", 32.5149, -117.0382, "Mexico"),
        _place("Ciudad Juárez", 31.6904, -106.4245, "Mexico"),
        _place("Sydney", -33.8688, 151.2093, "Australia"),
        _place("Tokyo", 35.6762, 139.6503, "Japan"),
        _place("Nairobi", -1.2921, 36.8219, "Kenya"),
        _place("São Paulo", -23.5505, -46.6333, "Brazil"),
        _place("Paris", 48.8566, 2.3522, "France"),
        _place("Berlin", 52.5200, 13.4050, "Germany"),
        _place("Moscow", 55.7558, 37.6173, "Russia"),
        _place("Mumbai", 19.0760, 72.8777, "India"),
        _place("Singapore", 1.3521, 103.8198, "Singapore"),
        _place("Buenos Aires", -34.6037, -58.3816, "Argentina"),
    ]


class LocationSettings(BaseModel):
    """Location cascade behaviour."""

    geoip_url: str = Field(default="http://ip-api.com/json/{ip}")
    geoip_timeout_seconds: float = Field(default=5.0, gt=0.0)
    trust_forwarded_for: bool = Field(default=True)
    placeholder: PlaceholderSettings = Field(default_factory=_default_placeholder)
    placeholder_fallback: bool = Field(default=True)
    location_key_precision: int = Field(default=1, ge=0, le=6)
    rotation: List[PlaceSettings] = Field(default_factory=default_rotation)

    model_config = ConfigDict(extra="forbid")

    @field_validator("rotation")
    @classmethod
    def check_rotation(cls, value: List[PlaceSettings]) -> List[PlaceSettings]:
        if not value:
            raise ValueError("Rotation must contain at least one location.")
        return value


class CacheSettings(BaseModel):
    """Update cache backend."""

    backend: Literal["file", "memory"] = Field(default="file")
    path: Optional[Path] = None
    retention_days: int = Field(default=7, ge=1)

    model_config = ConfigDict(extra="forbid")


class IntroSettings(BaseModel):
    """A pre-recorded intro track and the narrator voice it was recorded with."""

    voice: str
    url: str

    model_config = ConfigDict(extra="forbid")


class ScheduledCard(BaseModel):
    """A card refreshed by the daily sweep, with optional location hints."""

    id: str
    timezone: Optional[str] = None
    ip: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ScheduleSettings(BaseModel):
    """Daily sweep and cache maintenance schedule."""

    enabled: bool = Field(default=True)
    cron: str = Field(default="0 6 * * *")
    cards: List[ScheduledCard] = Field(default_factory=list)
    purge_interval_hours: int = Field(default=6, ge=1)

    model_config = ConfigDict(extra="forbid")


class RuntimeSettings(BaseModel):
    """Runtime-level defaults."""

    timezone: str = Field(default="UTC")
    storage_dir: Path = Field(default_factory=lambda: ConfigPaths.default().state_dir)
    log_level: str = Field(default="INFO")

    model_config = ConfigDict(extra="forbid")


class GlobalConfig(BaseModel):
    """Top-level configuration file model."""

    yoto: YotoSettings = Field(default_factory=YotoSettings)
    selector: SelectorSettings = Field(default_factory=SelectorSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    intros: List[IntroSettings] = Field(default_factory=list)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    model_config = ConfigDict(extra="forbid")

    @property
    def cache_path(self) -> Path:
        """Location of the JSON cache file with defaults applied."""

        if self.cache.path is not None:
            candidate = Path(self.cache.path).expanduser()
            if candidate.is_absolute():
                return candidate
            return Path(self.runtime.storage_dir).expanduser() / candidate
        return Path(self.runtime.storage_dir).expanduser() / "update_cache.json"

    def sweep_cards(self) -> List[ScheduledCard]:
        """Cards refreshed by the daily sweep, falling back to the default card."""

        if self.schedule.cards:
            return list(self.schedule.cards)
        if self.yoto.default_card_id:
            return [ScheduledCard(id=self.yoto.default_card_id)]
        return []


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:  # pragma: no cover - depends on invalid input
        raise ConfigError(f"Failed to parse YAML file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top level of {path}")
    return data


def load_global_config(path: Path) -> GlobalConfig:
    """Load and validate the global configuration file."""

    payload = _read_yaml(path)
    try:
        return GlobalConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def _default_global_config(paths: ConfigPaths) -> Dict[str, Any]:
    """Dictionary representing the starter global configuration."""

    return {
        "yoto": {
            "client_id": DEFAULT_PLACEHOLDER_VALUE,
            "access_token": DEFAULT_PLACEHOLDER_VALUE,
            "api_base_url": "https://api.yotoplay.com",
            "default_card_id": None,
        },
        "selector": {
            "base_url": "http://localhost:8081/api/v1",
        },
        "server": {
            "host": "0.0.0.0",
            "port": 8080,
            "scheduler_token": None,
            "environment": "development",
        },
        "location": {
            "placeholder": _default_placeholder().model_dump(),
            "placeholder_fallback": True,
            "location_key_precision": 1,
        },
        "cache": {
            "backend": "file",
            "retention_days": 7,
        },
        "intros": [],
        "schedule": {
            "enabled": True,
            "cron": "0 6 * * *",
            "cards": [],
        },
        "runtime": {
            "timezone": "UTC",
            "storage_dir": str(paths.state_dir),
            "log_level": "INFO",
        },
    }


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)


def bootstrap(paths: ConfigPaths, overwrite: bool = False) -> BootstrapReport:
    """Ensure configuration directories/files exist.

    Parameters
    ----------
    paths:
        Target filesystem layout.
    overwrite:
        When ``True`` the global config file is re-written even if it already exists.
    """

    base_created = False
    state_dir_created = False
    global_config_created = False
    global_config_overwritten = False

    if not paths.base_dir.exists():
        paths.base_dir.mkdir(parents=True, exist_ok=True)
        base_created = True

    if not paths.state_dir.exists():
        paths.state_dir.mkdir(parents=True, exist_ok=True)
        state_dir_created = True

    existing_global = paths.global_config.exists()
    if not existing_global or overwrite:
        _write_yaml(paths.global_config, _default_global_config(paths))
        global_config_created = True
        global_config_overwritten = existing_global and overwrite

    return BootstrapReport(
        base_created=base_created,
        state_dir_created=state_dir_created,
        global_config_created=global_config_created,
        global_config_overwritten=global_config_overwritten,
    )
