from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum

from wikiline.api.models import EventRecord, RoundPhase, RoundState
from wikiline.core.scoring import correct_insert_index
from wikiline.game_store import GameStore
from wikiline.geometry import (
    CardOffset,
    Point,
    Rect,
    ScrollViewport,
    demo_target_point,
    ensure_insert_visible,
    insert_height_from_card,
    insert_top_px,
)
from wikiline.scheduler import Scheduler, TimerHandle


logger = logging.getLogger(__name__)


class DemoPhase(StrEnum):
    approach = "approach"
    grab = "grab"
    drag = "drag"
    release = "release"


@dataclass(frozen=True, slots=True)
class DemoConfig:
    max_steps: int = 3
    # 2.0 plays the script twice as fast.
    speed: float = 1.0
    intro_ms: float = 700
    approach_ms: float = 450
    grab_ms: float = 300
    drag_ms: float = 900
    pause_ms: float = 1400

    def scaled(self, ms: float) -> float:
        return ms / self.speed if self.speed > 0 else ms


@dataclass(frozen=True, slots=True)
class DemoLayout:
    """Latest client measurements the script aims at."""

    list_rect: Rect
    cards: tuple[Rect, ...] = ()
    source: Rect = field(default_factory=lambda: Rect(0, 0, 0, 0))
    viewport: ScrollViewport | None = None
    card_offsets: tuple[CardOffset, ...] = ()


@dataclass(frozen=True, slots=True)
class DemoFrame:
    step: int
    phase: DemoPhase
    record: EventRecord
    index: int
    point: Point | None = None
    insert_top_px: float | None = None
    scroll_top: float | None = None


LayoutProvider = Callable[[], DemoLayout | None]
FrameSink = Callable[[DemoFrame], None]


class DemoSequencer:
    """Scripted autoplay that places a few cards through `GameStore.drop_at`.

    Contract:
      - starts by itself once the store has an active round in demo mode (`attach`).
      - each step emits approach -> grab -> drag -> release frames; release performs the drop.
      - every pending timer lives in one registry; leaving demo mode by any route
        (stop, human start/reset, load failure) cancels all of them synchronously.
    """

    def __init__(
        self,
        *,
        store: GameStore,
        scheduler: Scheduler,
        config: DemoConfig | None = None,
        layout: LayoutProvider | None = None,
        on_frame: FrameSink | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._config = config or DemoConfig()
        self._layout = layout
        self._on_frame = on_frame
        self._handles: list[TimerHandle] = []
        self._running = False
        self._steps_done = 0
        self._round_id: int | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def steps_done(self) -> int:
        return self._steps_done

    @property
    def pending(self) -> int:
        return len(self._handles)

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_state)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_all()
        self._running = False

    def _on_state(self, state: RoundState) -> None:
        # Scheduled steps aim at one deal; anything else invalidates them.
        if self._running and (not state.demo_mode or state.loading or self._store.round_id != self._round_id):
            logger.info("demo interrupted after %d step(s)", self._steps_done)
            self._cancel_all()
            self._running = False
        if not self._running and state.demo_mode and state.phase == RoundPhase.active:
            self.start()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._steps_done = 0
        self._round_id = self._store.round_id
        self._store.notify_demo_start()
        self._later(self._config.intro_ms, self._step)

    def stop(self) -> None:
        """End the demo and return the store to the intro."""

        self._cancel_all()
        self._running = False
        self._store.end_demo()

    def _later(self, ms: float, fn: Callable[[], None]) -> None:
        handle: TimerHandle | None = None

        def _run() -> None:
            if handle in self._handles:
                self._handles.remove(handle)
            if self._running:
                fn()

        handle = self._scheduler.schedule(_run, self._config.scaled(ms))
        self._handles.append(handle)

    def _cancel_all(self) -> None:
        for handle in self._handles:
            self._scheduler.cancel(handle)
        self._handles.clear()

    def _frame(self, frame: DemoFrame, phase: DemoPhase) -> None:
        if self._on_frame is not None:
            self._on_frame(replace(frame, phase=phase))

    def _step(self) -> None:
        state = self._store.state
        record = state.current
        if record is None or not state.demo_mode or self._steps_done >= self._config.max_steps:
            self.stop()
            return

        index = correct_insert_index(state.slots, record)
        frame = DemoFrame(step=self._steps_done + 1, phase=DemoPhase.approach, record=record, index=index)

        layout = self._layout() if self._layout is not None else None
        if layout is not None:
            scroll_top = None
            if layout.viewport is not None:
                scroll_top = ensure_insert_visible(layout.viewport, layout.card_offsets, index)
            frame = replace(
                frame,
                point=demo_target_point(layout.list_rect, layout.cards, index, layout.source),
                insert_top_px=insert_top_px(
                    layout.list_rect, layout.cards, index, insert_height_from_card(layout.source)
                ),
                scroll_top=scroll_top,
            )

        cfg = self._config
        self._frame(frame, DemoPhase.approach)
        self._later(cfg.approach_ms, lambda: self._frame(frame, DemoPhase.grab))
        self._later(cfg.approach_ms + cfg.grab_ms, lambda: self._frame(frame, DemoPhase.drag))
        self._later(cfg.approach_ms + cfg.grab_ms + cfg.drag_ms, lambda: self._release(frame))

    def _release(self, frame: DemoFrame) -> None:
        current = self._store.state.current
        if self._store.round_id != self._round_id or current is None or current.key != frame.record.key:
            logger.info("demo card %s is no longer in hand; ending demo", frame.record.key)
            self.stop()
            return

        self._frame(frame, DemoPhase.release)
        self._store.drop_at(frame.record, frame.index)
        self._steps_done += 1

        if self._store.state.current is None or self._steps_done >= self._config.max_steps:
            self._later(self._config.pause_ms, self.stop)
        else:
            self._later(self._config.pause_ms, self._step)
