from __future__ import annotations

import json
import logging
from collections.abc import Sequence

import redis
from pydantic import TypeAdapter, ValidationError

from wikiline.api.models import ScoreRecord


logger = logging.getLogger(__name__)

SCOREBOARD_KEY = "wikiline:scoreboard"
MAX_ENTRIES = 10

_records = TypeAdapter(list[ScoreRecord])


def rank_scores(entries: Sequence[ScoreRecord]) -> list[ScoreRecord]:
    """Best first: higher score, then faster round. Keeps the top MAX_ENTRIES."""

    ranked = sorted(entries, key=lambda e: (-e.score, e.elapsed_ms))
    return ranked[:MAX_ENTRIES]


def insert_score(entries: Sequence[ScoreRecord], entry: ScoreRecord) -> list[ScoreRecord]:
    return rank_scores([entry, *entries])


class ScoreStore:
    """Best-effort scoreboard persistence in Redis.

    Score keeping never blocks gameplay: reads fall back to an empty list and
    write failures are logged and dropped.
    """

    def __init__(self, *, r: redis.Redis, key: str = SCOREBOARD_KEY) -> None:
        self._r = r
        self._key = key

    def load(self) -> list[ScoreRecord]:
        try:
            raw = self._r.get(self._key)
            if not raw:
                return []
            return _records.validate_json(raw)[:MAX_ENTRIES]
        except (redis.RedisError, ValidationError, ValueError) as e:
            logger.warning("scoreboard load failed: %s", e)
            return []

    def save(self, entries: Sequence[ScoreRecord]) -> None:
        payload = json.dumps([e.model_dump(mode="json", by_alias=True) for e in entries[:MAX_ENTRIES]])
        try:
            self._r.set(self._key, payload)
        except redis.RedisError as e:
            logger.warning("scoreboard save failed: %s", e)

    def clear(self) -> None:
        try:
            self._r.delete(self._key)
        except redis.RedisError as e:
            logger.warning("scoreboard clear failed: %s", e)
