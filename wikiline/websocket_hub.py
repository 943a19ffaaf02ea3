from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class GameWebSocketHub:
    """In-process WebSocket fan-out for the game session.

    Contract:
      - register a connection via `connect(websocket)`.
      - push lightweight events with `broadcast(payload)` from async code, or
        `publish(payload)` from sync callbacks (store listeners, timers).

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._conns)

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._conns.discard(ws)

    def publish(self, payload: dict[str, object]) -> None:
        """Fire-and-forget broadcast; dropped when no event loop is running."""

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop; dropping %s", payload.get("type"))
            return
        task = loop.create_task(self.broadcast(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


hub = GameWebSocketHub()
