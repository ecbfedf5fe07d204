"""Shared application context: configuration plus the wired refresh pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from .auth import YotoClientFactory
from .cache import UpdateCache, build_backend
from .config import ConfigPaths, GlobalConfig, PlaceSettings, load_global_config
from .intros import IntroCatalog
from .local_calendar import LocalCalendar, TimezoneFinderResolver
from .location import GeoIPResolver, GlobalRotationSource, LocationCascade, TimezoneLocationResolver
from .logging import get_logger
from .models import IntroReference, Location
from .orchestrator import RefreshOrchestrator
from .services import HttpBirdSelector, YotoService


@dataclass
class AppContext:
    """Container for resolved configuration and the components built from it."""

    paths: ConfigPaths
    global_config: GlobalConfig
    _cache: Optional[UpdateCache] = field(default=None, init=False, repr=False)

    @property
    def cache(self) -> UpdateCache:
        if self._cache is None:
            self._cache = build_cache(self.global_config)
        return self._cache

    def build_orchestrator(self, logger: Optional[structlog.stdlib.BoundLogger] = None) -> RefreshOrchestrator:
        return build_orchestrator(self.global_config, cache=self.cache, logger=logger)


def determine_paths(config_dir: Optional[Path]) -> ConfigPaths:
    """Resolve configuration paths based on optional CLI override."""

    return ConfigPaths.from_base_dir(config_dir) if config_dir else ConfigPaths.default()


def load_context(paths: ConfigPaths) -> AppContext:
    """Load the global configuration from disk."""

    return AppContext(paths=paths, global_config=load_global_config(paths.global_config))


def _as_location(place: PlaceSettings) -> Location:
    return Location(
        latitude=place.latitude,
        longitude=place.longitude,
        city=place.city,
        region=place.region,
        country=place.country,
    )


def build_cache(config: GlobalConfig) -> UpdateCache:
    backend = build_backend(config.cache.backend, config.cache_path)
    return UpdateCache(backend, precision=config.location.location_key_precision)


def build_cascade(config: GlobalConfig, logger: Optional[structlog.stdlib.BoundLogger] = None) -> LocationCascade:
    settings = config.location
    placeholder = _as_location(settings.placeholder).as_placeholder()
    return LocationCascade(
        ip_resolver=GeoIPResolver(
            placeholder,
            url_template=settings.geoip_url,
            timeout=settings.geoip_timeout_seconds,
            precision=settings.location_key_precision,
        ),
        timezone_resolver=TimezoneLocationResolver(placeholder),
        rotation=GlobalRotationSource(_as_location(place) for place in settings.rotation),
        placeholder=placeholder,
        placeholder_timezone=settings.placeholder.timezone,
        placeholder_fallback=settings.placeholder_fallback,
        trust_forwarded_for=settings.trust_forwarded_for,
        rotation_timezone=config.runtime.timezone,
        logger=logger,
    )


def build_orchestrator(
    config: GlobalConfig,
    *,
    cache: Optional[UpdateCache] = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> RefreshOrchestrator:
    """Wire the production pipeline from configuration.

    Raises ``ConfigError`` when Yoto credentials are missing.
    """

    log = logger or get_logger("songbird")
    factory = YotoClientFactory(config)
    yoto = YotoService(
        factory.get_session(),
        factory.settings.api_base_url,
        timeout=factory.settings.timeout,
    )
    intros = IntroCatalog(
        (IntroReference(url=intro.url, voice=intro.voice) for intro in config.intros),
        base_url=config.server.base_url,
    )
    return RefreshOrchestrator(
        cascade=build_cascade(config, logger=log),
        calendar=LocalCalendar(TimezoneFinderResolver(), logger=log),
        cache=cache or build_cache(config),
        selector=HttpBirdSelector(config.selector.base_url, timeout=config.selector.timeout_seconds),
        publisher=yoto,
        intros=intros,
        devices=yoto,
        default_card_id=config.yoto.default_card_id,
        logger=log,
    )
