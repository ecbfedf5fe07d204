"""Day-indexed fallback locations for scheduled sweeps."""

from __future__ import annotations

from datetime import date
from typing import Iterable, List

from ..models import Location


class GlobalRotationSource:
    """Deterministic sequence of fallback locations, one per calendar day.

    Indexing by the proleptic ordinal keeps consecutive days distinct across
    year boundaries, leap years included.
    """

    def __init__(self, locations: Iterable[Location]) -> None:
        self._locations: List[Location] = list(locations)
        if not self._locations:
            raise ValueError("Rotation requires at least one location")

    def __len__(self) -> int:
        return len(self._locations)

    def index_for(self, day: date) -> int:
        return day.toordinal() % len(self._locations)

    def location_for(self, day: date) -> Location:
        return self._locations[self.index_for(day)]
