"""Intro track selection."""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from .models import IntroReference


class IntroCatalog:
    """Pick the day's intro so every refresh on one day uses the same narrator."""

    def __init__(self, intros: Iterable[IntroReference], base_url: Optional[str] = None) -> None:
        self._intros: List[IntroReference] = list(intros)
        self.base_url = base_url.rstrip("/") if base_url else None

    def for_day(self, day: date) -> Optional[IntroReference]:
        if not self._intros:
            return None
        intro = self._intros[day.toordinal() % len(self._intros)]
        if self.base_url and intro.url.startswith("/"):
            return IntroReference(url=f"{self.base_url}{intro.url}", voice=intro.voice)
        return intro
