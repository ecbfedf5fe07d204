from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from songbird.cache import MemoryCacheBackend, UpdateCache
from songbird.errors import LocationLookupError
from songbird.intros import IntroCatalog
from songbird.local_calendar import LocalCalendar
from songbird.location import GlobalRotationSource, LocationCascade, TimezoneLocationResolver
from songbird.models import BirdDescriptor, Location
from songbird.orchestrator import RefreshOrchestrator

LONDON = Location(51.5074, -0.1278, "London", "England", "United Kingdom").as_placeholder()
MOUNTAIN_VIEW = Location(37.386, -122.0838, "Mountain View", "California", "United States")
ROTATION = [
    Location(40.7128, -74.0060, "New York", country="United States"),
    Location(35.6762, 139.6503, "Tokyo", country="Japan"),
    Location(-33.8688, 151.2093, "Sydney", country="Australia"),
]
NOON_UTC = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)
ROBIN = BirdDescriptor(
    common_name="American Robin",
    audio_url="https://birds.example/robin.mp3",
    description="A cheerful songbird.",
)


class FakeIPResolver:
    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    def resolve(self, ip):
        self.calls.append(ip)
        result = self.results.get(ip)
        if result is None:
            raise LocationLookupError(f"no location for {ip}")
        if isinstance(result, Exception):
            raise result
        return result


class FakeGeoTimezone:
    def __init__(self, zone="UTC"):
        self.zone = zone

    def timezone_at(self, latitude, longitude):
        return self.zone


class FakeSelector:
    def __init__(self, bird=ROBIN, error=None):
        self.bird = bird
        self.error = error
        self.calls = []

    def select_bird_of_day(self, location):
        self.calls.append(location)
        if self.error is not None:
            raise self.error
        return self.bird


class FakePublisher:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def publish_refresh(self, card_id, bird, intro, location):
        self.calls.append(SimpleNamespace(card_id=card_id, bird=bird, intro=intro, location=location))
        if self.error is not None:
            raise self.error


class FakeDevices:
    def __init__(self, zones=None):
        self.zones = dict(zones or {})
        self.calls = []

    def device_timezone(self, device_id):
        self.calls.append(device_id)
        return self.zones.get(device_id)


@pytest.fixture
def make_cascade():
    def _make(ip_results=None, clock=lambda: NOON_UTC, **kwargs):
        ip_resolver = FakeIPResolver(ip_results)
        cascade = LocationCascade(
            ip_resolver=ip_resolver,
            timezone_resolver=TimezoneLocationResolver(LONDON),
            rotation=GlobalRotationSource(ROTATION),
            placeholder=LONDON,
            placeholder_timezone="Europe/London",
            clock=clock,
            **kwargs,
        )
        return cascade, ip_resolver

    return _make


@pytest.fixture
def make_pipeline(make_cascade):
    """Build an orchestrator wired to in-test fakes and an in-memory cache."""

    def _make(
        ip_results=None,
        zone="UTC",
        now=NOON_UTC,
        cache=None,
        selector=None,
        publisher=None,
        devices=None,
        intros=None,
        default_card_id="card-1",
        **cascade_kwargs,
    ):
        cascade, ip_resolver = make_cascade(ip_results, clock=lambda: now, **cascade_kwargs)
        pipeline = SimpleNamespace(
            ip_resolver=ip_resolver,
            cache=cache or UpdateCache(MemoryCacheBackend()),
            selector=selector or FakeSelector(),
            publisher=publisher or FakePublisher(),
            devices=devices,
        )
        pipeline.orchestrator = RefreshOrchestrator(
            cascade=cascade,
            calendar=LocalCalendar(FakeGeoTimezone(zone), clock=lambda: now),
            cache=pipeline.cache,
            selector=pipeline.selector,
            publisher=pipeline.publisher,
            intros=IntroCatalog(intros or []),
            devices=devices,
            default_card_id=default_card_id,
        )
        return pipeline

    return _make
