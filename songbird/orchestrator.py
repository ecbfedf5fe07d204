"""Refresh pipeline shared by the daily sweep, device webhooks and manual updates."""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Protocol

import structlog

from .cache import CacheKey, UpdateCache
from .errors import CacheUnavailableError, LocationConfigurationError, PublishError
from .intros import IntroCatalog
from .local_calendar import LocalCalendar
from .location import LocationCascade
from .logging import get_logger, refresh_context
from .models import (
    BirdDescriptor,
    IntroReference,
    Location,
    RefreshOutcome,
    RefreshRequest,
    RefreshResult,
    TriggerKind,
)


class BirdSelector(Protocol):
    def select_bird_of_day(self, location: Location) -> BirdDescriptor:
        ...


class ContentPublisher(Protocol):
    def publish_refresh(
        self,
        card_id: str,
        bird: BirdDescriptor,
        intro: Optional[IntroReference],
        location: Location,
    ) -> None:
        ...


class DeviceDirectory(Protocol):
    def device_timezone(self, device_id: str) -> Optional[str]:
        ...


class SweepCard(Protocol):
    id: str
    timezone: Optional[str]
    ip: Optional[str]


class RefreshOrchestrator:
    """Resolve, date, de-duplicate, select and publish, in that order.

    The cache write is the only serialization point. It happens after a
    successful publish, so the cache never records a refresh that did not
    reach the card; racing invocations may publish twice but only the first
    record survives.
    """

    def __init__(
        self,
        cascade: LocationCascade,
        calendar: LocalCalendar,
        cache: UpdateCache,
        selector: BirdSelector,
        publisher: ContentPublisher,
        *,
        intros: Optional[IntroCatalog] = None,
        devices: Optional[DeviceDirectory] = None,
        default_card_id: Optional[str] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.cascade = cascade
        self.calendar = calendar
        self.cache = cache
        self.selector = selector
        self.publisher = publisher
        self.intros = intros or IntroCatalog([])
        self.devices = devices
        self.default_card_id = default_card_id
        self.logger = logger or get_logger("songbird.orchestrator")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def refresh(self, request: RefreshRequest) -> RefreshResult:
        card_id = request.card_id or self.default_card_id
        with refresh_context(request.trigger.value, card_id):
            return self._refresh(request, card_id)

    def _refresh(self, request: RefreshRequest, card_id: Optional[str]) -> RefreshResult:
        log = self.logger

        if not card_id:
            log.error("orchestrator.card_missing")
            return RefreshResult(
                outcome=RefreshOutcome.ERROR,
                error="No card id supplied and no default card configured",
            )

        device_timezone = request.device_timezone or self._device_timezone(request.device_id, log)

        try:
            resolution = self.cascade.resolve(
                request.trigger,
                request.client_ip,
                device_timezone,
                forwarded_for=request.forwarded_for,
            )
        except LocationConfigurationError as exc:
            log.error("orchestrator.location_unresolved", error=str(exc))
            return RefreshResult(outcome=RefreshOutcome.ERROR, card_id=card_id, error=str(exc))

        location = resolution.location
        local_date, zone = self.calendar.local_date(location)
        cache_key = self.cache.key(
            card_id,
            local_date,
            self.cache.location_key(location.latitude, location.longitude),
        )
        log = log.bind(city=location.city, date=local_date, tier=resolution.tier.value)

        warning = None
        if resolution.is_fallback_default:
            warning = f"Location could not be detected; using default location {location.label}"

        result = RefreshResult(
            outcome=RefreshOutcome.SUCCESS,
            card_id=card_id,
            location=location.city,
            date=local_date,
            timezone=zone,
            tier=resolution.tier,
            warning=warning,
        )

        previous = self._cached_bird(cache_key, log)
        if previous is not None:
            log.info("orchestrator.already_updated", bird=previous)
            result.outcome = RefreshOutcome.ALREADY_UPDATED
            result.bird = previous
            result.message = f"Already showing {previous} for today"
            return result

        try:
            bird = self.selector.select_bird_of_day(location)
        except Exception as exc:
            log.error("orchestrator.selection_failed", error=str(exc))
            result.outcome = RefreshOutcome.ERROR
            result.error = f"Failed to select bird: {exc}"
            return result

        result.bird = bird.common_name
        intro = self.intros.for_day(date.fromisoformat(local_date))

        try:
            self.publisher.publish_refresh(card_id, bird, intro, location)
        except Exception as exc:
            log.error("orchestrator.publish_failed", bird=bird.common_name, error=str(exc))
            result.outcome = RefreshOutcome.ERROR
            result.error = f"Failed to update card: {exc}"
            return result

        self._record(cache_key, bird.common_name, location.city, log)
        log.info("orchestrator.updated", bird=bird.common_name)
        result.message = f"Card updated with {bird.common_name}"
        return result

    def sweep(self, cards: Iterable[SweepCard]) -> List[RefreshResult]:
        """Run a scheduled refresh for each card."""

        results = []
        for card in cards:
            request = RefreshRequest(
                trigger=TriggerKind.SCHEDULED,
                card_id=card.id,
                client_ip=card.ip,
                device_timezone=card.timezone,
            )
            results.append(self.refresh(request))
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _device_timezone(self, device_id: Optional[str], log: structlog.stdlib.BoundLogger) -> Optional[str]:
        if not device_id or self.devices is None:
            return None
        try:
            return self.devices.device_timezone(device_id)
        except PublishError as exc:
            log.info("orchestrator.device_timezone_unavailable", device_id=device_id, error=str(exc))
            return None

    def _cached_bird(self, cache_key: CacheKey, log: structlog.stdlib.BoundLogger) -> Optional[str]:
        try:
            record = self.cache.get_record(cache_key)
        except CacheUnavailableError as exc:
            log.warning("cache.read_failed", key=str(cache_key), error=str(exc))
            return None
        return record.bird_name if record is not None else None

    def _record(self, cache_key: CacheKey, bird_name: str, city: str, log: structlog.stdlib.BoundLogger) -> None:
        try:
            stored = self.cache.mark_updated(cache_key, bird_name, city=city or None)
        except CacheUnavailableError as exc:
            log.error("cache.write_failed", key=str(cache_key), error=str(exc))
            return
        if not stored:
            log.info("cache.write_lost_race", key=str(cache_key))
