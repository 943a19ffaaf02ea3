from __future__ import annotations

import os
from dataclasses import dataclass

from wikiline.events_client import DEFAULT_BASE_URL


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    events_base_url: str
    fetch_attempts: int
    fetch_timeout_s: float
    demo_speed: float
    demo_max_steps: int


def settings_from_env() -> Settings:
    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        events_base_url=os.environ.get("WIKILINE_EVENTS_BASE_URL", DEFAULT_BASE_URL),
        fetch_attempts=int(os.environ.get("WIKILINE_FETCH_ATTEMPTS", "2")),
        fetch_timeout_s=float(os.environ.get("WIKILINE_FETCH_TIMEOUT_S", "5")),
        # >1 speeds the demo up, <1 slows it down.
        demo_speed=float(os.environ.get("WIKILINE_DEMO_SPEED", "1")),
        demo_max_steps=int(os.environ.get("WIKILINE_DEMO_MAX_STEPS", "3")),
    )
