"""
Persists the logged-in user outside the database.

A single JSON document with one "session" key. It is not transactional with
the database: a login can be remembered even if the last write to the
database failed, and the other way round.
"""
import json
import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import Request

from models import SessionData

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._session: Optional[SessionData] = None
        if self.path is not None and self.path.exists():
            self._session = self._load()

    def _load(self) -> Optional[SessionData]:
        # pydantic's ValidationError is a ValueError
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            raw = data.get("session") if isinstance(data, dict) else None
            return SessionData.model_validate(raw) if raw else None
        except (OSError, ValueError):
            logger.warning("Session file %s is unreadable, starting logged out", self.path)
            return None

    def _dump(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        session = self._session.model_dump(mode="json", by_alias=True) if self._session else None
        self.path.write_text(json.dumps({"session": session}, ensure_ascii=False), encoding="utf-8")

    def get(self) -> Optional[SessionData]:
        return self._session

    def set(self, session: SessionData) -> None:
        self._session = session
        self._dump()

    def clear(self) -> None:
        self._session = None
        self._dump()


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store
