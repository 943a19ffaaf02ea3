from __future__ import annotations

import math
from collections.abc import Sequence

from wikiline.api.models import EventRecord


BASE_POINTS = 10
STREAK_BONUS = 2
# Seconds after which a placement no longer earns a speed bonus.
TIME_BONUS_WINDOW_S = 6


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def is_chronological(records: Sequence[EventRecord]) -> bool:
    """Non-decreasing by year; equal years may appear in any order."""

    return all(records[i - 1].year <= records[i].year for i in range(1, len(records)))


def correct_insert_index(slots: Sequence[EventRecord], record: EventRecord) -> int:
    """First slot whose year is later than the record's, or the end."""

    return next((i for i, ev in enumerate(slots) if ev.year > record.year), len(slots))


def time_bonus(elapsed_seconds: float) -> int:
    return max(0, round_half_up(TIME_BONUS_WINDOW_S - elapsed_seconds))


def correct_points(*, streak: int, bonus: int) -> int:
    """Points for a correct placement; `streak` already includes this placement."""

    return max(0, BASE_POINTS + streak * STREAK_BONUS + bonus)


def corrected_points(*, bonus: int) -> int:
    return max(0, BASE_POINTS // 2 + bonus)


def placement_message(record: EventRecord, index: int, timeline: Sequence[EventRecord]) -> str:
    """Explain where a misplaced card belongs.

    `timeline` is the corrected sequence with `record` at `index`; the message
    names the years of its neighbors there.
    """

    year = record.year
    prev = timeline[index - 1] if index > 0 else None
    nxt = timeline[index + 1] if index < len(timeline) - 1 else None
    if prev is None and nxt is not None:
        return f"This event was {year} and you placed it before {nxt.year}."
    if prev is not None and nxt is None:
        return f"This event was {year} and you placed it after {prev.year}."
    if prev is not None and nxt is not None:
        return f"This event was {year} and you placed it between {prev.year} and {nxt.year}."
    return f"This event was {year}."


def format_elapsed(ms: float) -> str:
    total_seconds = max(0, math.floor(ms / 1000))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"
