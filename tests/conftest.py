from __future__ import annotations

import asyncio
import random
from collections.abc import Generator

import fakeredis
import pytest

from wikiline.api.models import EventRecord
from wikiline.config import Settings
from wikiline.game_store import GameStore
from wikiline.scheduler import ManualScheduler
from wikiline.scoreboard import ScoreStore


YEARS = [1900, 1910, 1920, 1930, 1940]


def make_events(years: list[int] | None = None) -> list[EventRecord]:
    return [EventRecord(year=y, title=f"Event {y}") for y in (years or YEARS)]


def assert_deal_intact(store: GameStore) -> None:
    """Every dealt card sits in exactly one place: the timeline, the hand, or the deck."""

    s = store.state
    held = [*s.slots, *([s.current] if s.current is not None else []), *s.deck]
    assert sorted(r.key for r in held) == sorted(r.key for r in store.round_events)


class NoShuffle(random.Random):
    """Deals events in the order given, so rounds are predictable."""

    def shuffle(self, x) -> None:  # type: ignore[no-untyped-def, override]
        return None


class FakeProvider:
    """Event provider stub: returns queued results in order, repeating the last one.

    A result may be an exception instance, which is raised instead.
    """

    def __init__(self, *results: list[EventRecord] | Exception) -> None:
        self.results = list(results) or [make_events()]
        self.calls: list[int] = []

    async def fetch_events(self, max_attempts: int) -> list[EventRecord]:
        self.calls.append(max_attempts)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return list(result)


class PendingProvider:
    """Event provider whose fetches stay in flight until the test resolves them."""

    def __init__(self) -> None:
        self.pending: list[asyncio.Future[list[EventRecord]]] = []

    async def fetch_events(self, max_attempts: int) -> list[EventRecord]:
        fut: asyncio.Future[list[EventRecord]] = asyncio.get_running_loop().create_future()
        self.pending.append(fut)
        return await fut


class Toasts:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def __call__(self, message: str, kind: str) -> None:
        self.messages.append((message, kind))

    @property
    def last(self) -> tuple[str, str]:
        return self.messages[-1]


def make_settings(**overrides) -> Settings:  # type: ignore[no-untyped-def]
    values = {
        "redis_url": "redis://localhost:6379/15",
        "events_base_url": "https://wiki.test/api/rest_v1",
        "fetch_attempts": 2,
        "fetch_timeout_s": 1.0,
        "demo_speed": 1.0,
        "demo_max_steps": 3,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def toasts() -> Toasts:
    return Toasts()


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider(make_events())


@pytest.fixture()
def store(r: fakeredis.FakeRedis, scheduler: ManualScheduler, toasts: Toasts, provider: FakeProvider) -> GameStore:
    return GameStore(
        provider=provider,
        scores=ScoreStore(r=r),
        scheduler=scheduler,
        notify=toasts,
        rng=NoShuffle(),
    )


@pytest.fixture()
def client_and_session(r: fakeredis.FakeRedis) -> Generator[tuple[object, object], None, None]:
    """FastAPI TestClient over a session built from fakes (fakeredis, stub provider, manual clock)."""

    from fastapi.testclient import TestClient

    from wikiline.main import app
    from wikiline.session import init_session, reset_session_for_tests
    from wikiline.websocket_hub import hub

    reset_session_for_tests()
    session = init_session(
        r=r,
        settings=make_settings(),
        publish=hub.publish,
        provider=FakeProvider(make_events()),
        scheduler=ManualScheduler(),
        rng=NoShuffle(),
    )
    with TestClient(app) as c:
        yield c, session
    reset_session_for_tests()
