"""Idempotency ledger recording which card was refreshed where, and on which local day."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

from filelock import FileLock, Timeout

from .errors import CacheUnavailableError
from .models import RefreshRecord, location_key as _location_key

CACHE_VERSION = 1


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CacheKey:
    """Identity of a refresh: (card, local date, location key)."""

    card_id: str
    local_date: str
    location_key: str

    def __str__(self) -> str:
        return f"{self.card_id}_{self.local_date}_{self.location_key}"


class CacheBackend(Protocol):
    """Storage for refresh records. ``insert_if_absent`` must be atomic per key."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def insert_if_absent(self, key: str, record: Dict[str, Any]) -> bool:
        ...

    def records(self) -> Dict[str, Dict[str, Any]]:
        ...

    def delete_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> int:
        ...


class MemoryCacheBackend:
    """Process-local backend guarded by a lock."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            return dict(entry) if entry is not None else None

    def insert_if_absent(self, key: str, record: Dict[str, Any]) -> bool:
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = dict(record)
            return True

    def records(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: dict(value) for key, value in self._entries.items()}

    def delete_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> int:
        with self._lock:
            doomed = [key for key, value in self._entries.items() if predicate(value)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)


class JsonFileCacheBackend:
    """JSON file backend shared by every process pointing at the same path.

    Each read-check-write runs under an OS-level lock on ``<path>.lock``, so
    the server, the scheduler and CLI invocations agree on the first writer.
    """

    def __init__(self, path: Path, lock_timeout: float = 10.0) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._file_lock = FileLock(str(self.path) + ".lock", timeout=lock_timeout)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            try:
                _ensure_parent(self.path)
                with self._file_lock:
                    yield
            except Timeout as exc:
                raise CacheUnavailableError(f"Timed out waiting for update cache lock {exc.lock_file}") from exc
            except OSError as exc:
                raise CacheUnavailableError(f"Failed to lock update cache {self.path}: {exc}") from exc

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle) or {}
        except (OSError, ValueError) as exc:
            raise CacheUnavailableError(f"Failed to read update cache {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise CacheUnavailableError(f"Update cache {self.path} is not a JSON object")
        entries = payload.get("entries")
        return entries if isinstance(entries, dict) else {}

    def _save(self, entries: Dict[str, Dict[str, Any]]) -> None:
        payload = {
            "version": CACHE_VERSION,
            "updated_at": _utcnow_iso(),
            "entries": entries,
        }
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        except OSError as exc:
            raise CacheUnavailableError(f"Failed to write update cache {self.path}: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise CacheUnavailableError(f"Failed to write update cache {self.path}: {exc}") from exc

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._locked():
            return self._load().get(key)

    def insert_if_absent(self, key: str, record: Dict[str, Any]) -> bool:
        with self._locked():
            entries = self._load()
            if key in entries:
                return False
            entries[key] = record
            self._save(entries)
            return True

    def records(self) -> Dict[str, Dict[str, Any]]:
        with self._locked():
            return self._load()

    def delete_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> int:
        with self._locked():
            entries = self._load()
            kept = {key: value for key, value in entries.items() if not predicate(value)}
            removed = len(entries) - len(kept)
            if removed:
                self._save(kept)
            return removed


class UpdateCache:
    """Records refreshes so each (card, local day, location) happens at most once.

    The first ``mark_updated`` for a key wins; later writers for the same key
    are no-ops and read back the stored record instead.
    """

    def __init__(self, backend: CacheBackend, precision: int = 1) -> None:
        self.backend = backend
        self.precision = precision

    def location_key(self, latitude: float, longitude: float) -> str:
        return _location_key(latitude, longitude, self.precision)

    @staticmethod
    def key(card_id: str, local_date: str, location_key: str) -> CacheKey:
        return CacheKey(card_id=card_id, local_date=local_date, location_key=location_key)

    def has_been_updated(self, cache_key: CacheKey) -> bool:
        return self.get_record(cache_key) is not None

    def get_record(self, cache_key: CacheKey) -> Optional[RefreshRecord]:
        payload = self.backend.get(str(cache_key))
        if payload is None:
            return None
        try:
            return RefreshRecord.from_dict(payload)
        except (KeyError, TypeError) as exc:
            raise CacheUnavailableError(f"Corrupt cache entry for {cache_key}") from exc

    def mark_updated(self, cache_key: CacheKey, bird_name: str, city: Optional[str] = None) -> bool:
        """Store the refresh unless one already exists; return whether this call stored it."""

        record = RefreshRecord(
            card_id=cache_key.card_id,
            local_date=cache_key.local_date,
            location_key=cache_key.location_key,
            bird_name=bird_name,
            created_at=_utcnow_iso(),
            city=city,
        )
        return self.backend.insert_if_absent(str(cache_key), record.to_dict())

    def purge(self, before: date) -> int:
        """Drop records whose local day is earlier than ``before``."""

        cutoff = before.isoformat()
        return self.backend.delete_where(lambda entry: str(entry.get("local_date", "")) < cutoff)

    def records(self) -> List[RefreshRecord]:
        results = []
        for payload in self.backend.records().values():
            try:
                results.append(RefreshRecord.from_dict(payload))
            except (KeyError, TypeError):
                continue
        return sorted(results, key=lambda item: (item.local_date, item.card_id, item.location_key))

    def stats(self) -> Dict[str, int]:
        records = self.records()
        return {
            "total_entries": len(records),
            "unique_locations": len({record.location_key for record in records}),
            "unique_cards": len({record.card_id for record in records}),
        }


def build_backend(kind: str, path: Optional[Path] = None) -> CacheBackend:
    if kind == "memory":
        return MemoryCacheBackend()
    if kind == "file":
        if path is None:
            raise ValueError("File cache backend requires a path")
        return JsonFileCacheBackend(path)
    raise ValueError(f"Unknown cache backend: {kind}")
