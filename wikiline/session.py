from __future__ import annotations

import random
from collections.abc import Callable

import redis

from wikiline.api.models import DemoLayoutRequest, RectIn, RoundState
from wikiline.config import Settings
from wikiline.demo import DemoConfig, DemoFrame, DemoLayout, DemoSequencer
from wikiline.events_client import EventProvider, WikipediaEventsClient
from wikiline.game_store import GameStore, NotifyKind
from wikiline.geometry import CardOffset, Rect, ScrollViewport
from wikiline.scheduler import AsyncioScheduler, Scheduler
from wikiline.scoreboard import ScoreStore


Publish = Callable[[dict[str, object]], None]


def rect_from(r: RectIn) -> Rect:
    return Rect(left=r.left, top=r.top, right=r.right, bottom=r.bottom)


def layout_from_request(payload: DemoLayoutRequest) -> DemoLayout:
    viewport = None
    if payload.viewport is not None:
        viewport = ScrollViewport(
            scroll_top=payload.viewport.scroll_top,
            client_height=payload.viewport.client_height,
            scroll_height=payload.viewport.scroll_height,
        )
    return DemoLayout(
        list_rect=rect_from(payload.list_rect),
        cards=tuple(rect_from(c) for c in payload.cards),
        source=rect_from(payload.source),
        viewport=viewport,
        card_offsets=tuple(CardOffset(offset_top=c.offset_top, offset_height=c.offset_height) for c in payload.card_offsets),
    )


def _frame_payload(frame: DemoFrame) -> dict[str, object]:
    return {
        "type": "demo_frame",
        "step": frame.step,
        "phase": frame.phase.value,
        "record": frame.record.model_dump(mode="json"),
        "index": frame.index,
        "point": None if frame.point is None else {"x": frame.point.x, "y": frame.point.y},
        "insert_top_px": frame.insert_top_px,
        "scroll_top": frame.scroll_top,
    }


class GameSession:
    """The single-player game as hosted by the API: store + demo + last measured layout."""

    def __init__(self, *, store: GameStore, demo: DemoSequencer) -> None:
        self.store = store
        self.demo = demo
        self.layout: DemoLayout | None = None

    def latest_layout(self) -> DemoLayout | None:
        return self.layout

    def dispose(self) -> None:
        self.demo.detach()
        self.store.dispose()


def build_session(
    *,
    r: redis.Redis,
    settings: Settings,
    provider: EventProvider | None = None,
    scheduler: Scheduler | None = None,
    rng: random.Random | None = None,
    publish: Publish | None = None,
) -> GameSession:
    scheduler = scheduler or AsyncioScheduler()
    provider = provider or WikipediaEventsClient(
        base_url=settings.events_base_url,
        timeout_s=settings.fetch_timeout_s,
    )

    def _notify(message: str, kind: NotifyKind) -> None:
        if publish is not None:
            publish({"type": "toast", "message": message, "kind": kind})

    store = GameStore(
        provider=provider,
        scores=ScoreStore(r=r),
        scheduler=scheduler,
        notify=_notify,
        rng=rng,
        max_fetch_attempts=settings.fetch_attempts,
    )

    session: GameSession | None = None

    def _layout() -> DemoLayout | None:
        return session.latest_layout() if session is not None else None

    def _on_frame(frame: DemoFrame) -> None:
        if publish is not None:
            publish(_frame_payload(frame))

    demo = DemoSequencer(
        store=store,
        scheduler=scheduler,
        config=DemoConfig(max_steps=settings.demo_max_steps, speed=settings.demo_speed),
        layout=_layout,
        on_frame=_on_frame,
    )
    session = GameSession(store=store, demo=demo)
    demo.attach()

    if publish is not None:

        def _on_change(state: RoundState) -> None:
            publish({"type": "game_updated", "phase": state.phase.value})

        store.subscribe(_on_change)

    return session


_SESSION: GameSession | None = None


def init_session(**kwargs) -> GameSession:  # type: ignore[no-untyped-def]
    """Build the session once and cache it.

    Safe to call multiple times; subsequent calls return the already built instance.
    """

    global _SESSION
    if _SESSION is None:
        _SESSION = build_session(**kwargs)
    return _SESSION


def reset_session_for_tests() -> None:
    global _SESSION
    if _SESSION is not None:
        _SESSION.dispose()
    _SESSION = None


def get_session() -> GameSession:
    if _SESSION is None:
        raise RuntimeError("Session not initialized. Call init_session() at startup.")
    return _SESSION
