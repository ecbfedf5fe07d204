from datetime import date, datetime, timezone

import pytest

from conftest import LONDON, MOUNTAIN_VIEW, NOON_UTC, ROTATION
from songbird.errors import LocationConfigurationError
from songbird.location import GlobalRotationSource
from songbird.models import ResolutionTier, TriggerKind


def test_ip_tier_wins_when_it_resolves(make_cascade):
    cascade, _ = make_cascade({"8.8.8.8": MOUNTAIN_VIEW})

    resolution = cascade.resolve(TriggerKind.WEBHOOK, "8.8.8.8", "Asia/Tokyo")

    assert resolution.tier is ResolutionTier.IP
    assert resolution.location.city == "Mountain View"
    assert resolution.is_fallback_default is False


def test_placeholder_ip_result_falls_through_to_timezone(make_cascade):
    cascade, _ = make_cascade({"203.0.113.7": LONDON})

    resolution = cascade.resolve(TriggerKind.WEBHOOK, "203.0.113.7", "America/Chicago")

    assert resolution.tier is ResolutionTier.TIMEZONE
    assert resolution.location.city == "Chicago"


def test_placeholder_ip_result_is_never_accepted_even_without_timezone(make_cascade):
    cascade, _ = make_cascade({"203.0.113.7": LONDON})

    resolution = cascade.resolve(TriggerKind.SCHEDULED, "203.0.113.7", None)

    assert resolution.tier is ResolutionTier.ROTATION


def test_placeholder_timezone_is_accepted_for_its_own_zone(make_cascade):
    cascade, _ = make_cascade()

    resolution = cascade.resolve(TriggerKind.WEBHOOK, None, "Europe/London")

    assert resolution.tier is ResolutionTier.TIMEZONE
    assert resolution.location.city == "London"
    assert resolution.is_fallback_default is False


def test_unknown_timezone_is_rejected(make_cascade):
    cascade, _ = make_cascade()

    resolution = cascade.resolve(TriggerKind.WEBHOOK, None, "Mars/Olympus_Mons")

    assert resolution.tier is ResolutionTier.DEFAULT
    assert resolution.is_fallback_default is True


def test_scheduled_trigger_falls_back_to_rotation(make_cascade):
    cascade, _ = make_cascade()

    resolution = cascade.resolve(TriggerKind.SCHEDULED, None, None)

    expected = GlobalRotationSource(ROTATION).location_for(NOON_UTC.date())
    assert resolution.tier is ResolutionTier.ROTATION
    assert resolution.location == expected
    assert resolution.is_fallback_default is False


def test_rotation_day_follows_configured_timezone(make_cascade):
    late_evening = datetime(2024, 5, 20, 23, 30, tzinfo=timezone.utc)
    cascade, _ = make_cascade(clock=lambda: late_evening, rotation_timezone="Asia/Tokyo")

    resolution = cascade.resolve(TriggerKind.SCHEDULED, None, None)

    assert resolution.location == GlobalRotationSource(ROTATION).location_for(date(2024, 5, 21))


@pytest.mark.parametrize("trigger", [TriggerKind.WEBHOOK, TriggerKind.MANUAL])
def test_interactive_trigger_falls_back_to_placeholder(make_cascade, trigger):
    cascade, _ = make_cascade()

    resolution = cascade.resolve(trigger, None, None)

    assert resolution.tier is ResolutionTier.DEFAULT
    assert resolution.location.placeholder is True
    assert resolution.location.city == "London"
    assert resolution.is_fallback_default is True


def test_disabled_placeholder_fallback_raises_for_interactive_triggers(make_cascade):
    cascade, _ = make_cascade(placeholder_fallback=False)

    with pytest.raises(LocationConfigurationError):
        cascade.resolve(TriggerKind.WEBHOOK, None, "Not/AZone")


def test_disabled_placeholder_fallback_keeps_rotation_for_scheduled(make_cascade):
    cascade, _ = make_cascade(placeholder_fallback=False)

    resolution = cascade.resolve(TriggerKind.SCHEDULED, None, None)

    assert resolution.tier is ResolutionTier.ROTATION


def test_forwarded_for_replaces_loopback_peer(make_cascade):
    cascade, ip_resolver = make_cascade({"8.8.8.8": MOUNTAIN_VIEW})

    resolution = cascade.resolve(
        TriggerKind.WEBHOOK,
        "127.0.0.1",
        None,
        forwarded_for="8.8.8.8, 10.0.0.1",
    )

    assert ip_resolver.calls == ["8.8.8.8"]
    assert resolution.tier is ResolutionTier.IP


def test_forwarded_for_ignored_when_untrusted(make_cascade):
    cascade, ip_resolver = make_cascade({"8.8.8.8": MOUNTAIN_VIEW}, trust_forwarded_for=False)

    resolution = cascade.resolve(TriggerKind.WEBHOOK, "127.0.0.1", None, forwarded_for="8.8.8.8")

    assert "8.8.8.8" not in ip_resolver.calls
    assert resolution.tier is ResolutionTier.DEFAULT


def test_rotation_is_a_pure_function_of_the_day():
    rotation = GlobalRotationSource(ROTATION)
    day = date(2024, 2, 28)

    assert rotation.location_for(day) == rotation.location_for(date(2024, 2, 28))
    assert rotation.location_for(day) != rotation.location_for(date(2024, 2, 29))
    assert rotation.location_for(date(2024, 2, 29)) != rotation.location_for(date(2024, 3, 1))


def test_rotation_consecutive_days_differ_across_year_end():
    rotation = GlobalRotationSource(ROTATION)

    for year in (2023, 2024, 2025):
        assert rotation.location_for(date(year, 12, 31)) != rotation.location_for(date(year + 1, 1, 1))


def test_rotation_requires_locations():
    with pytest.raises(ValueError):
        GlobalRotationSource([])


def test_unknown_rotation_timezone_falls_back_to_utc(make_cascade):
    late_evening = datetime(2024, 5, 20, 23, 30, tzinfo=timezone.utc)
    cascade, _ = make_cascade(clock=lambda: late_evening, rotation_timezone="Not/AZone")

    resolution = cascade.resolve(TriggerKind.SCHEDULED, None, None)

    assert cascade.rotation_zone.key == "UTC"
    assert resolution.location == GlobalRotationSource(ROTATION).location_for(date(2024, 5, 20))
