from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional


DEFAULT_BASE_URL = "https://berghain.challenges.listenlabs.ai"
SIMULATED_BASE_URL = "http://localhost:5000"
DEFAULT_PLAYER_ID = "15f0e870-99e8-4572-a1b2-0cf0dcef4d8d"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    player_id: str = DEFAULT_PLAYER_ID
    poll_interval: float = 5.0
    status_retries: int = 2
    retry_delay: float = 2.5
    # None means requests wait indefinitely
    timeout: Optional[float] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("BOUNCER_BASE_URL"):
            config = replace(config, base_url=env["BOUNCER_BASE_URL"])
        if env.get("BOUNCER_PLAYER_ID"):
            config = replace(config, player_id=env["BOUNCER_PLAYER_ID"])
        if env.get("BOUNCER_POLL_INTERVAL"):
            config = replace(config, poll_interval=float(env["BOUNCER_POLL_INTERVAL"]))
        return config

    def with_overrides(self, **overrides) -> "ClientConfig":
        """Apply the non-None overrides, typically parsed CLI flags."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)
