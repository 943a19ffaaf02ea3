from __future__ import annotations

from wikiline.session import GameSession, get_session as _current_session


def get_session() -> GameSession:
    return _current_session()
