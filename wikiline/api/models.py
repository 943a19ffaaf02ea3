from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class EventRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    title: str
    url: str | None = None
    thumbnail: str | None = None

    @property
    def key(self) -> str:
        """Placement key: identifies a card for feedback tracking."""

        return placement_key(self.year, self.title)


def placement_key(year: int, title: str) -> str:
    return f"{year}-{title}"


class LoadError(BaseModel):
    message: str
    status: int | None = None
    status_text: str | None = None
    url: str | None = None


class ScoreRecord(BaseModel):
    # Field aliases keep the stored JSON shape stable for the browser client.
    model_config = ConfigDict(populate_by_name=True)

    score: int
    elapsed_ms: int = Field(..., alias="elapsedMs")
    correct: int
    attempts: int
    best_streak: int = Field(..., alias="bestStreak")
    finished_at: datetime = Field(..., alias="finishedAt")


class RoundPhase(StrEnum):
    idle = "idle"
    loading = "loading"
    active = "active"
    completed = "completed"


class RoundState(BaseModel):
    phase: RoundPhase = RoundPhase.idle

    # Hidden from snapshots; a client should not see upcoming cards.
    deck: list[EventRecord] = Field(default_factory=list, exclude=True)
    all_events: list[EventRecord] = Field(default_factory=list, exclude=True)

    slots: list[EventRecord] = Field(default_factory=list)
    current: EventRecord | None = None

    correct: int = 0
    attempts: int = 0
    score: int = 0
    streak: int = 0
    best_streak: int = 0

    # Keys of cards that were ever misplaced, plus the explanation shown for each.
    incorrect_keys: list[str] = Field(default_factory=list)
    incorrect_messages: dict[str, str] = Field(default_factory=dict)

    elapsed_ms: int = 0
    elapsed_label: str = "0:00"

    scoreboard: list[ScoreRecord] = Field(default_factory=list)

    loading: bool = False
    load_error: LoadError | None = None
    show_intro: bool = True
    has_started: bool = False
    show_completion: bool = True
    demo_mode: bool = False


class DropRequest(BaseModel):
    position: int = Field(..., ge=0)


class MoveSlotRequest(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class PointIn(BaseModel):
    x: float
    y: float


class RectIn(BaseModel):
    left: float
    top: float
    right: float
    bottom: float


class RailHoverRequest(BaseModel):
    pointer: PointIn
    rail: RectIn
    slot_count: int = Field(..., ge=0)


class RailHoverResponse(BaseModel):
    index: int | None
    insert_offset_pct: float | None = None


class TimelineHoverRequest(BaseModel):
    pointer: PointIn
    list_rect: RectIn
    cards: list[RectIn] = Field(default_factory=list)
    card_px_height: float = Field(..., ge=0)


class TimelineHoverResponse(BaseModel):
    index: int | None
    top_px: float | None = None


class ScrollViewportIn(BaseModel):
    scroll_top: float = 0
    client_height: float
    scroll_height: float


class CardOffsetIn(BaseModel):
    offset_top: float
    offset_height: float


class DemoLayoutRequest(BaseModel):
    """Layout measured by the client; the demo uses the latest one reported."""

    list_rect: RectIn
    cards: list[RectIn] = Field(default_factory=list)
    source: RectIn
    viewport: ScrollViewportIn | None = None
    card_offsets: list[CardOffsetIn] = Field(default_factory=list)


class ScoreListResponse(BaseModel):
    scores: list[ScoreRecord]
