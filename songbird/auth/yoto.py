"""Yoto API authentication and session helpers."""

from __future__ import annotations

from dataclasses import dataclass

import requests

from ..config import DEFAULT_PLACEHOLDER_VALUE, GlobalConfig
from ..errors import ConfigError


@dataclass
class YotoClientSettings:
    client_id: str
    access_token: str
    api_base_url: str
    timeout: float


class YotoClientFactory:
    """Factory for building authenticated ``requests`` sessions for the Yoto API."""

    def __init__(self, global_config: GlobalConfig) -> None:
        yoto_settings = global_config.yoto
        if yoto_settings.access_token in {"", DEFAULT_PLACEHOLDER_VALUE}:
            raise ConfigError(
                "Yoto credentials are not configured. Update config.yml with a real access token."
            )

        self.settings = YotoClientSettings(
            client_id=yoto_settings.client_id,
            access_token=yoto_settings.access_token,
            api_base_url=yoto_settings.api_base_url.rstrip("/"),
            timeout=yoto_settings.timeout_seconds,
        )

    def get_session(self) -> requests.Session:
        """Return a session carrying the bearer token."""

        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.settings.access_token}",
                "Content-Type": "application/json",
            }
        )
        return session
