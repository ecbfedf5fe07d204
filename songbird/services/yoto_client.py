"""Thin wrapper around the Yoto content and device APIs."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from ..errors import PublishError, YotoRateLimitError
from ..models import BirdDescriptor, IntroReference, Location


def _retry_after(response: requests.Response) -> Optional[int]:
    header = response.headers.get("Retry-After")
    try:
        return int(str(header)) if header is not None else None
    except (TypeError, ValueError):
        return None


class YotoService:
    """Publish refreshed content to a card and read device configuration."""

    def __init__(self, session: requests.Session, base_url: str, timeout: float = 30.0) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _execute(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise PublishError(f"Yoto request failed: {exc}") from exc

        if response.status_code == 429:
            raise YotoRateLimitError(_retry_after(response), f"Rate limited by Yoto on {path}")
        if response.status_code not in (200, 201):
            raise PublishError(f"Yoto {method} {path} failed: {response.status_code} - {response.text[:200]}")
        return response

    # ------------------------------------------------------------------
    # Content publishing
    # ------------------------------------------------------------------
    def publish_refresh(
        self,
        card_id: str,
        bird: BirdDescriptor,
        intro: Optional[IntroReference],
        location: Location,
    ) -> None:
        """Replace the card's playlist with today's bird."""

        payload = self.build_content(card_id, bird, intro, location)
        self._execute("POST", "/content", json=payload)

    @staticmethod
    def build_content(
        card_id: str,
        bird: BirdDescriptor,
        intro: Optional[IntroReference],
        location: Location,
    ) -> Dict[str, Any]:
        tracks: List[Dict[str, Any]] = []
        if intro is not None:
            tracks.append(_stream_track("Introduction", intro.url))
        tracks.append(_stream_track(f"{bird.common_name} Song", bird.audio_url))
        for index, track in enumerate(tracks, start=1):
            track["key"] = f"{index:02d}"

        metadata: Dict[str, Any] = {
            "description": bird.description,
            "latitude": location.latitude,
            "longitude": location.longitude,
        }
        if location.city:
            metadata["location"] = location.city
        if intro is not None and intro.voice:
            metadata["voice"] = intro.voice
        if bird.icon_url:
            metadata["iconUrl"] = bird.icon_url

        return {
            "cardId": card_id,
            "title": "Bird Song Explorer",
            "content": {
                "chapters": [
                    {
                        "key": "01",
                        "title": bird.common_name,
                        "tracks": tracks,
                    }
                ]
            },
            "metadata": metadata,
        }

    # ------------------------------------------------------------------
    # Device directory
    # ------------------------------------------------------------------
    def device_timezone(self, device_id: str) -> Optional[str]:
        """Return the timezone configured on the player, if any."""

        response = self._execute("GET", f"/device-v2/{device_id}/config")
        try:
            payload = response.json()
        except ValueError as exc:
            raise PublishError("Yoto device config response is not JSON") from exc
        device = payload.get("device") if isinstance(payload, dict) else None
        config = device.get("config") if isinstance(device, dict) else None
        if not isinstance(config, dict):
            raise PublishError(f"Yoto device config for {device_id} has an unexpected shape")
        zone = str(config.get("geoTimezone") or "").strip()
        return zone or None


def _stream_track(title: str, url: str) -> Dict[str, Any]:
    return {
        "title": title,
        "trackUrl": url,
        "type": "stream",
        "format": "mp3",
    }
