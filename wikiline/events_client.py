from __future__ import annotations

import logging
import random
import re
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from wikiline.api.models import EventRecord, LoadError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://en.wikipedia.org/api/rest_v1"
SEARCH_URL = "https://en.wikipedia.org/wiki/Special:Search?search="

MIN_EVENTS = 5
MAX_EVENTS = 10

# "Something happened (pictured)" -> "Something happened"
_TRAILING_PAREN = re.compile(r"\s+\(.*?\)$")


class EventLoadError(Exception):
    """Raised when no usable batch of events could be fetched."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        status_text: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.status_text = status_text
        self.url = url

    def to_load_error(self) -> LoadError:
        return LoadError(message=self.message, status=self.status, status_text=self.status_text, url=self.url)


class EventProvider(Protocol):
    async def fetch_events(self, max_attempts: int) -> list[EventRecord]: ...


def search_url(title: str) -> str:
    return SEARCH_URL + quote(title, safe="")


def _first_page(ev: dict[str, Any]) -> dict[str, Any]:
    pages = ev.get("pages")
    if isinstance(pages, list) and pages and isinstance(pages[0], dict):
        return pages[0]
    return {}


def _nested(d: dict[str, Any], *path: str) -> str | None:
    cur: Any = d
    for part in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur if isinstance(cur, str) and cur else None


def parse_onthisday(data: Any) -> list[EventRecord]:
    """Normalize an "on this day" payload into event records, deduplicated by title.

    Entries without an integer year or a text are dropped. Order is preserved.
    """

    events = data.get("events") if isinstance(data, dict) else None
    if not isinstance(events, list):
        return []

    seen: set[str] = set()
    out: list[EventRecord] = []
    for ev in events:
        if not isinstance(ev, dict):
            continue
        year = ev.get("year")
        text = ev.get("text")
        # bool is an int subclass; JSON true is not a year.
        if not isinstance(year, int) or isinstance(year, bool) or not isinstance(text, str) or not text:
            continue

        title = _TRAILING_PAREN.sub("", text)
        if title in seen:
            continue
        seen.add(title)

        page = _first_page(ev)
        url = (
            _nested(page, "content_urls", "desktop", "page")
            or _nested(page, "content_urls", "mobile", "page")
            or search_url(title)
        )
        thumbnail = _nested(page, "thumbnail", "source") or _nested(page, "originalimage", "source")
        out.append(EventRecord(year=year, title=title, url=url, thumbnail=thumbnail))
    return out


class WikipediaEventsClient:
    """Event provider backed by the Wikipedia "on this day" feed.

    Each attempt picks a random day, so a retry is also a fresh deck.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 5.0,
        rng: random.Random | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._rng = rng or random.Random()
        self._transport = transport

    def _random_day_url(self) -> str:
        month = self._rng.randint(1, 12)
        day = self._rng.randint(1, 28)
        return f"{self._base_url}/feed/onthisday/events/{month}/{day}"

    async def _fetch_once(self, client: httpx.AsyncClient) -> list[EventRecord]:
        url = self._random_day_url()
        try:
            res = await client.get(url)
        except httpx.HTTPError as e:
            raise EventLoadError(f"Could not reach Wikipedia: {e}", url=url) from e

        if not res.is_success:
            raise EventLoadError(
                "Bad response from Wikipedia.",
                status=res.status_code,
                status_text=res.reason_phrase,
                url=url,
            )

        try:
            data = res.json()
        except ValueError as e:
            raise EventLoadError("Wikipedia returned malformed JSON.", status=res.status_code, url=url) from e

        records = parse_onthisday(data)
        self._rng.shuffle(records)
        chosen = records[:MAX_EVENTS]
        if len(chosen) < MIN_EVENTS:
            raise EventLoadError("Not enough events from Wikipedia.", url=url)
        return chosen

    async def fetch_events(self, max_attempts: int) -> list[EventRecord]:
        last_error: EventLoadError | None = None
        async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await self._fetch_once(client)
                except EventLoadError as e:
                    logger.info("event fetch attempt %d/%d failed: %s", attempt, max_attempts, e.message)
                    last_error = e
        raise last_error or EventLoadError("Failed to load events.")
