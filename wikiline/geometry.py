"""Drop-target geometry for the two timeline surfaces.

Everything here works on rectangles the client already measured (viewport
coordinates, y growing downwards). Nothing touches a live display tree, so the
same functions back the hover endpoints, the demo script, and the tests.

Two surfaces accept a dragged card:
- the year rail: a compact column split into `slot_count + 1` equal bands,
- the card list: split into bands by the gaps between consecutive cards.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass


# Landing point inset used when the demo drops at either end of the list.
EDGE_INSET_PX = 12
AFTER_LAST_GAP_PX = 8


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Rect:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def contains(self, p: Point) -> bool:
        return self.left <= p.x <= self.right and self.top <= p.y <= self.bottom


@dataclass(frozen=True, slots=True)
class InsertionTarget:
    index: int
    top_px: float


@dataclass(frozen=True, slots=True)
class Band:
    """Vertical gap where an insertion line can be drawn."""

    top: float
    bottom: float

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True, slots=True)
class ScrollViewport:
    scroll_top: float
    client_height: float
    scroll_height: float


@dataclass(frozen=True, slots=True)
class CardOffset:
    """Card position inside the scrollable list (offsetTop/offsetHeight)."""

    offset_top: float
    offset_height: float

    @property
    def offset_bottom(self) -> float:
        return self.offset_top + self.offset_height


def _round_px(value: float) -> int:
    # Half-up rounding, matching how browsers round pixel values.
    return math.floor(value + 0.5)


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def insert_height_from_card(card: Rect | None) -> int:
    if card is None:
        return 0
    return math.ceil(card.height)


# --- Year rail -------------------------------------------------------------


def rail_hover_index(pointer: Point, rail: Rect, slot_count: int) -> int | None:
    """Insertion gap under the pointer on the rail, or None when off the rail."""

    if not rail.contains(pointer):
        return None
    ratio = 0.0 if rail.height <= 0 else _clamp((pointer.y - rail.top) / rail.height, 0.0, 1.0)
    return int(_clamp(math.floor(ratio * (slot_count + 1)), 0, slot_count))


def rail_mark_offset(index: int, count: int) -> float:
    """Vertical position (percent) of the year mark for slot `index`."""

    if not count:
        return 50.0
    return (index + 1) / (count + 1) * 100


def rail_insert_offset(index: int | None, count: int) -> float:
    """Vertical position (percent) of the rail insertion line."""

    if index is None or not count:
        return 50.0
    return (index + 0.5) / (count + 1) * 100


# --- Card list -------------------------------------------------------------


def timeline_bands(list_rect: Rect, cards: Sequence[Rect]) -> list[Band]:
    """One band per insertion index: list top .. first card .. gaps .. list bottom."""

    if not cards:
        return [Band(list_rect.top, list_rect.bottom)]

    bands = [Band(list_rect.top, cards[0].top)]
    for prev, nxt in zip(cards, cards[1:]):
        bands.append(Band(prev.bottom, nxt.top))
    bands.append(Band(cards[-1].bottom, list_rect.bottom))
    return bands


def _band_hit_index(y: float, list_rect: Rect, cards: Sequence[Rect]) -> int:
    """Which band the pointer belongs to.

    A pointer over a card counts toward the nearer gap: each band's hit region
    runs from the middle of the card above it to the middle of the card below.
    """

    count = len(cards)
    if y < list_rect.top:
        return 0
    if y > list_rect.bottom:
        return count

    edges = [list_rect.top]
    edges.extend(c.top + c.height / 2 for c in cards)
    edges.append(list_rect.bottom)

    for idx in range(count + 1):
        if edges[idx] <= y < edges[idx + 1]:
            return idx
    # Rounding left y outside every region (e.g. exactly on the list bottom).
    return count


def insert_top_px(list_rect: Rect, cards: Sequence[Rect], index: int, height: float) -> float:
    """Offset of the insertion line from the list top for gap `index`."""

    if not cards:
        return 0
    bands = timeline_bands(list_rect, cards)
    band = bands[int(_clamp(index, 0, len(cards)))]
    if band.height > height:
        top = band.top + (band.height - height) / 2
    else:
        top = band.top
    return max(0, _round_px(top - list_rect.top))


def timeline_hover(
    pointer: Point,
    list_rect: Rect,
    cards: Sequence[Rect],
    card_px_height: float,
) -> InsertionTarget | None:
    if pointer.x < list_rect.left or pointer.x > list_rect.right:
        return None
    if not cards:
        return InsertionTarget(index=0, top_px=0)

    index = _band_hit_index(pointer.y, list_rect, cards)
    return InsertionTarget(index=index, top_px=insert_top_px(list_rect, cards, index, card_px_height))


def demo_target_point(list_rect: Rect, cards: Sequence[Rect], index: int, source: Rect) -> Point:
    """Screen point the scripted drag should travel to for gap `index`."""

    x = cards[0].left if cards else list_rect.left + EDGE_INSET_PX
    if not cards or index <= 0:
        return Point(x=_round_px(x), y=_round_px(list_rect.top + EDGE_INSET_PX))
    if index >= len(cards):
        return Point(x=_round_px(x), y=_round_px(cards[-1].bottom + AFTER_LAST_GAP_PX))

    band = timeline_bands(list_rect, cards)[index]
    center = (band.top + band.bottom) / 2
    return Point(x=_round_px(x), y=_round_px(center - source.height / 2))


def ensure_insert_visible(viewport: ScrollViewport, cards: Sequence[CardOffset], index: int) -> float:
    """Scroll position that keeps gap `index` on screen.

    Returns the current scroll position untouched when the gap is already
    visible; otherwise centers the gap, clamped to the scrollable range.
    """

    if not cards:
        return 0
    max_scroll = max(0.0, viewport.scroll_height - viewport.client_height)

    if index <= 0:
        target = 0.0
    elif index >= len(cards):
        target = cards[-1].offset_bottom
    else:
        target = (cards[index - 1].offset_bottom + cards[index].offset_top) / 2

    visible_top = viewport.scroll_top
    visible_bottom = visible_top + viewport.client_height
    if visible_top <= target <= visible_bottom:
        return viewport.scroll_top
    return _clamp(target - viewport.client_height / 2, 0.0, max_scroll)
