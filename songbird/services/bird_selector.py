"""Client for the bird-of-the-day service."""

from __future__ import annotations

from typing import Optional

import requests

from ..errors import SelectionError
from ..models import BirdDescriptor, Location


class HttpBirdSelector:
    """Ask the bird-of-the-day service which bird to present for a location."""

    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def select_bird_of_day(self, location: Location) -> BirdDescriptor:
        params = {"lat": location.latitude, "lng": location.longitude}
        try:
            response = self.session.get(f"{self.base_url}/bird-of-day", params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise SelectionError(f"Failed to get bird: {exc}") from exc
        except ValueError as exc:
            raise SelectionError("Bird-of-day response is not JSON") from exc

        if isinstance(payload, dict) and isinstance(payload.get("bird"), dict):
            payload = payload["bird"]
        if not isinstance(payload, dict):
            raise SelectionError("Bird-of-day response has an unexpected shape")
        try:
            return BirdDescriptor.from_payload(payload)
        except ValueError as exc:
            raise SelectionError(str(exc)) from exc
