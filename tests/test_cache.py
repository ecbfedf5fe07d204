import json
import threading
from datetime import date

import pytest

from songbird.cache import CacheKey, JsonFileCacheBackend, MemoryCacheBackend, UpdateCache, build_backend
from songbird.errors import CacheUnavailableError


def _key(card="card-1", day="2024-05-20", location="51.5_-0.1"):
    return UpdateCache.key(card, day, location)


def test_location_key_rounds_to_precision():
    cache = UpdateCache(MemoryCacheBackend())

    assert cache.location_key(51.5074, -0.1278) == "51.5_-0.1"
    assert cache.location_key(51.5299, -0.1499) == "51.5_-0.1"
    assert cache.location_key(-0.04, 0.0) == "0.0_0.0"
    assert UpdateCache(MemoryCacheBackend(), precision=2).location_key(51.5074, -0.1278) == "51.51_-0.13"


def test_cache_key_string_form():
    assert str(CacheKey("card-1", "2024-05-20", "51.5_-0.1")) == "card-1_2024-05-20_51.5_-0.1"


def test_first_mark_wins():
    cache = UpdateCache(MemoryCacheBackend())
    key = _key()

    assert cache.has_been_updated(key) is False
    assert cache.mark_updated(key, "Robin", city="London") is True
    assert cache.mark_updated(key, "Wren") is False

    record = cache.get_record(key)
    assert record.bird_name == "Robin"
    assert record.city == "London"
    assert cache.has_been_updated(key) is True


def test_keys_differ_by_day_and_location():
    cache = UpdateCache(MemoryCacheBackend())
    cache.mark_updated(_key(), "Robin")

    assert cache.has_been_updated(_key(day="2024-05-21")) is False
    assert cache.has_been_updated(_key(location="48.9_2.4")) is False
    assert cache.has_been_updated(_key(card="card-2")) is False


@pytest.mark.parametrize("backend_kind", ["memory", "file"])
def test_concurrent_marks_store_exactly_one_bird(tmp_path, backend_kind):
    cache = UpdateCache(build_backend(backend_kind, tmp_path / "cache.json"))
    key = _key()
    birds = [f"Bird {index}" for index in range(8)]
    barrier = threading.Barrier(len(birds))
    winners = []

    def worker(name):
        barrier.wait()
        if cache.mark_updated(key, name):
            winners.append(name)

    threads = [threading.Thread(target=worker, args=(name,)) for name in birds]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert cache.get_record(key).bird_name == winners[0]
    assert cache.stats()["total_entries"] == 1


def test_file_backend_persists_between_instances(tmp_path):
    path = tmp_path / "state" / "update_cache.json"
    UpdateCache(JsonFileCacheBackend(path)).mark_updated(_key(), "Robin")

    reopened = UpdateCache(JsonFileCacheBackend(path))

    assert reopened.get_record(_key()).bird_name == "Robin"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert "card-1_2024-05-20_51.5_-0.1" in payload["entries"]


def test_file_backend_reports_corrupt_file(tmp_path):
    path = tmp_path / "update_cache.json"
    path.write_text("{not json", encoding="utf-8")
    cache = UpdateCache(JsonFileCacheBackend(path))

    with pytest.raises(CacheUnavailableError):
        cache.get_record(_key())


def test_purge_drops_records_before_cutoff():
    cache = UpdateCache(MemoryCacheBackend())
    cache.mark_updated(_key(day="2024-05-10"), "Robin")
    cache.mark_updated(_key(day="2024-05-19"), "Wren")
    cache.mark_updated(_key(day="2024-05-20"), "Blackbird")

    removed = cache.purge(date(2024, 5, 19))

    assert removed == 1
    assert [record.bird_name for record in cache.records()] == ["Wren", "Blackbird"]


def test_stats_counts_unique_cards_and_locations():
    cache = UpdateCache(MemoryCacheBackend())
    cache.mark_updated(_key(), "Robin")
    cache.mark_updated(_key(card="card-2"), "Robin")
    cache.mark_updated(_key(location="48.9_2.4"), "Wren")

    assert cache.stats() == {"total_entries": 3, "unique_locations": 2, "unique_cards": 2}


def test_build_backend_rejects_unknown_kind():
    with pytest.raises(ValueError):
        build_backend("redis")


def test_separate_file_backends_agree_on_first_writer(tmp_path):
    path = tmp_path / "state" / "update_cache.json"
    for trial in range(20):
        key = _key(day=f"2024-06-{trial + 1:02d}")
        caches = [UpdateCache(JsonFileCacheBackend(path)) for _ in range(4)]
        barrier = threading.Barrier(len(caches))
        winners = []
        errors = []

        def worker(cache, name):
            barrier.wait()
            try:
                if cache.mark_updated(key, name):
                    winners.append(name)
            except CacheUnavailableError as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(cache, f"Bird {index}"))
            for index, cache in enumerate(caches)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(winners) == 1
        assert UpdateCache(JsonFileCacheBackend(path)).get_record(key).bird_name == winners[0]

    assert UpdateCache(JsonFileCacheBackend(path)).stats()["total_entries"] == 20
    assert not list(path.parent.glob("*.tmp"))
