from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Literal

from wikiline.api.models import EventRecord, LoadError, RoundPhase, RoundState, ScoreRecord
from wikiline.core.scoring import (
    correct_insert_index,
    correct_points,
    corrected_points,
    format_elapsed,
    is_chronological,
    placement_message,
    time_bonus,
)
from wikiline.events_client import EventLoadError, EventProvider
from wikiline.fsm import RoundFSM
from wikiline.scheduler import Scheduler, TimerHandle
from wikiline.scoreboard import ScoreStore, insert_score


logger = logging.getLogger(__name__)

NotifyKind = Literal["success", "warning"]
Notifier = Callable[[str, NotifyKind], None]
Listener = Callable[[RoundState], None]

DEFAULT_FETCH_ATTEMPTS = 2
TICK_MS = 250


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _silent(message: str, kind: NotifyKind) -> None:
    logger.debug("notify[%s]: %s", kind, message)


class GameStore:
    """Owns one player's round: deck, timeline slots, scoring, and the round timer.

    Contract:
      - every mutation goes through a method here and is followed by a change
        notification to subscribers (`subscribe`).
      - `drop_at` is the only operation that touches score, attempts, correct, or streak.
      - phase changes are guarded by `RoundFSM`.
      - a fetch resolution is applied only if no newer fetch was started since
        (epoch counter); stale results are dropped.
    """

    def __init__(
        self,
        *,
        provider: EventProvider,
        scores: ScoreStore,
        scheduler: Scheduler,
        notify: Notifier | None = None,
        rng: random.Random | None = None,
        max_fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS,
    ) -> None:
        self._state = RoundState()
        self._fsm = RoundFSM(self._state)
        self._provider = provider
        self._scores = scores
        self._scheduler = scheduler
        self._notify = notify or _silent
        self._rng = rng or random.Random()
        self._max_fetch_attempts = max_fetch_attempts

        self._listeners: list[Listener] = []
        self._epoch = 0
        self._start_requested = False
        self._card_start_ms = 0.0
        self._round_start_ms = 0.0
        self._timer: TimerHandle | None = None
        self._round_events: tuple[EventRecord, ...] = ()
        self._round_id = 0

    # --- observation ---------------------------------------------------------

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def round_size(self) -> int:
        """Number of events dealt into the current round."""

        return len(self._round_events)

    @property
    def round_events(self) -> tuple[EventRecord, ...]:
        return self._round_events

    @property
    def round_id(self) -> int:
        """Bumped every time a round is dealt; a script aimed at an older deal is stale."""

        return self._round_id

    def snapshot(self) -> RoundState:
        return self._state.model_copy(deep=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    def _fire(self, event: str) -> None:
        self._fsm.send(event)
        self._fsm.sync_phase_to_model()

    # --- lifecycle -----------------------------------------------------------

    async def init(self) -> None:
        self._state.scoreboard = self._scores.load()
        self._emit()
        await self._load_events(auto_start=False)

    def dispose(self) -> None:
        self._stop_timer()

    async def start_game(self) -> None:
        self._clear_demo()
        await self._request_start()

    async def start_demo(self) -> None:
        self._state.demo_mode = True
        await self._request_start()

    async def reset(self) -> None:
        self._clear_demo()
        self._state.show_intro = False
        self._stop_timer()
        await self._load_events(auto_start=True)

    async def _request_start(self) -> None:
        self._start_requested = True
        self._state.show_intro = False

        if self._state.loading:
            # The in-flight fetch starts the round when it settles.
            self._emit()
            return
        if self._state.load_error is not None or not self._state.all_events:
            await self._load_events(auto_start=True)
            return

        self._start_round(self._state.all_events)
        self._emit()

    def end_demo(self) -> None:
        """Leave demo mode and go back to the intro; the demo round is discarded."""

        if not self._state.demo_mode:
            return
        if self._state.loading:
            # Orphan the in-flight fetch so it cannot start a round behind the intro.
            self._epoch += 1
            self._state.loading = False
        self._clear_demo()
        self._stop_timer()
        self._clear_round()
        self._state.has_started = False
        self._fire("abandon")
        self._emit()

    def notify_demo_start(self) -> None:
        self._notify("Demo: we will drag a few cards into the right spots.", "success")

    def _clear_demo(self) -> None:
        self._state.demo_mode = False
        self._state.show_intro = True
        self._start_requested = False

    def _clear_round(self) -> None:
        self._state.current = None
        self._state.slots = []
        self._state.deck = []
        self._round_events = ()

    # --- loading -------------------------------------------------------------

    async def _load_events(self, *, auto_start: bool) -> None:
        self._epoch += 1
        epoch = self._epoch

        self._state.loading = True
        self._state.load_error = None
        self._fire("fetch")
        self._emit()

        try:
            events = await self._provider.fetch_events(self._max_fetch_attempts)
        except EventLoadError as e:
            if epoch == self._epoch:
                self._fail_load(e.to_load_error())
            return
        except Exception as e:
            logger.exception("event provider crashed")
            if epoch == self._epoch:
                self._fail_load(LoadError(message=str(e) or "Failed to load events."))
            return

        if epoch != self._epoch:
            logger.debug("dropping stale fetch result (epoch %d, current %d)", epoch, self._epoch)
            return

        self._state.loading = False
        self._state.all_events = list(events)
        if auto_start or self._start_requested:
            self._start_round(events)
        elif self._state.phase == RoundPhase.loading:
            self._fire("settle")
        self._emit()

    def _fail_load(self, err: LoadError) -> None:
        logger.warning("event load failed: %s", err.message)
        self._state.loading = False
        self._state.load_error = err
        self._stop_timer()
        self._clear_round()
        self._clear_demo()
        self._state.has_started = False
        self._state.show_completion = False
        self._fire("abandon")
        self._emit()

    # --- rounds --------------------------------------------------------------

    def _start_round(self, events: Sequence[EventRecord]) -> None:
        shuffled = list(events)
        self._rng.shuffle(shuffled)
        if not shuffled:
            if self._state.phase == RoundPhase.loading:
                self._fire("settle")
            return

        first, *rest = shuffled
        self._state.slots = [first]
        self._state.current = rest[0] if rest else None
        self._state.deck = rest[1:]
        self._round_events = tuple(shuffled)
        self._round_id += 1

        self._state.correct = 0
        self._state.attempts = 0
        self._state.score = 0
        self._state.streak = 0
        self._state.best_streak = 0
        self._state.incorrect_keys = []
        self._state.incorrect_messages = {}

        self._state.show_completion = False
        self._state.show_intro = False
        self._state.has_started = True
        self._start_requested = False

        self._card_start_ms = self._scheduler.now_ms()
        self._fire("begin_round")
        self._start_timer()

        if self._state.current is None:
            # A single-event round has nothing to place.
            self._stop_timer()
            self._state.show_completion = True
            self._fire("finish")

    def drop_at(self, dragged: EventRecord | None, position: int) -> None:
        """Place the current card at `position` in the timeline.

        A wrong placement is moved to its correct spot, scored at half value,
        and remembered with an explanation. Calls without an active card are
        ignored.
        """

        current = self._state.current
        if dragged is None or current is None or self._state.phase != RoundPhase.active:
            return

        slots = self._state.slots
        position = max(0, min(position, len(slots)))
        tentative = list(slots)
        tentative.insert(position, dragged)

        now = self._scheduler.now_ms()
        bonus = time_bonus(max(0.0, (now - self._card_start_ms) / 1000))
        self._state.attempts += 1

        if is_chronological(tentative):
            streak = self._state.streak + 1
            points = correct_points(streak=streak, bonus=bonus)
            self._state.streak = streak
            self._state.best_streak = max(self._state.best_streak, streak)
            self._state.score += points
            self._state.correct += 1
            self._state.slots = tentative
            self._notify(f"Nice! +{points} points.", "success")
        else:
            idx = correct_insert_index(slots, dragged)
            corrected = list(slots)
            corrected.insert(idx, dragged)
            message = placement_message(dragged, idx, corrected)
            points = corrected_points(bonus=bonus)
            self._state.streak = 0
            self._state.score += points
            self._state.slots = corrected
            self._mark_incorrect(dragged, message)
            if points:
                self._notify(f"Not quite. {message} +{points} points.", "warning")
            else:
                self._notify(f"Not quite. {message} Moved to the correct position.", "warning")

        deck = self._state.deck
        self._state.current = deck[0] if deck else None
        self._state.deck = deck[1:]
        self._card_start_ms = now

        if self._state.current is None:
            self._complete_round(now)
        self._emit()

    def _complete_round(self, now: float) -> None:
        self._stop_timer()
        self._set_elapsed(now - self._round_start_ms)
        self._state.show_completion = True
        self._fire("finish")
        self._save_score_entry()

    def place_current(self, position: int) -> None:
        """Player drop of the current card; ignored while the demo owns the round."""

        if self._state.demo_mode:
            logger.debug("ignoring player drop during demo")
            return
        self.drop_at(self._state.current, position)

    def move_slot(self, from_index: int, to_index: int) -> None:
        """Free rearrangement of placed cards; no scoring and no order check."""

        slots = list(self._state.slots)
        if not 0 <= from_index < len(slots):
            raise ValueError(f"from_index out of range: {from_index}")
        if not 0 <= to_index < len(slots):
            raise ValueError(f"to_index out of range: {to_index}")
        slots.insert(to_index, slots.pop(from_index))
        self._state.slots = slots
        self._emit()

    def view_timeline(self) -> None:
        self._state.show_completion = False
        self._emit()

    # --- feedback ------------------------------------------------------------

    def _mark_incorrect(self, record: EventRecord, message: str) -> None:
        key = record.key
        if key not in self._state.incorrect_keys:
            self._state.incorrect_keys = [*self._state.incorrect_keys, key]
        self._state.incorrect_messages = {**self._state.incorrect_messages, key: message}

    def is_corrected(self, record: EventRecord) -> bool:
        return record.key in self._state.incorrect_keys

    def incorrect_message(self, record: EventRecord) -> str | None:
        return self._state.incorrect_messages.get(record.key)

    # --- timer ---------------------------------------------------------------

    def _set_elapsed(self, ms: float) -> None:
        self._state.elapsed_ms = max(0, int(ms))
        self._state.elapsed_label = format_elapsed(ms)

    def _start_timer(self) -> None:
        self._stop_timer()
        self._round_start_ms = self._scheduler.now_ms()
        self._set_elapsed(0)
        self._timer = self._scheduler.schedule(self._tick, TICK_MS)

    def _stop_timer(self) -> None:
        if self._timer is None:
            return
        self._scheduler.cancel(self._timer)
        self._timer = None

    def _tick(self) -> None:
        label = self._state.elapsed_label
        self._set_elapsed(self._scheduler.now_ms() - self._round_start_ms)
        self._timer = self._scheduler.schedule(self._tick, TICK_MS)
        if self._state.elapsed_label != label:
            self._emit()

    # --- scoreboard ----------------------------------------------------------

    def _save_score_entry(self) -> None:
        if self._state.demo_mode:
            return
        entry = ScoreRecord(
            score=self._state.score,
            elapsed_ms=self._state.elapsed_ms,
            correct=self._state.correct,
            attempts=self._state.attempts,
            best_streak=self._state.best_streak,
            finished_at=_now(),
        )
        updated = insert_score(self._state.scoreboard, entry)
        self._state.scoreboard = updated
        self._scores.save(updated)

    def clear_scoreboard(self) -> None:
        self._state.scoreboard = []
        self._scores.clear()
        self._emit()
