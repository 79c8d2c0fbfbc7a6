import logging
from datetime import date
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

import sync
from database import Database, Transaction, new_id
from models import (
    JournalOut, JournalSummary, LessonSessionIn, LessonSessionOut, Period, SessionCategory, SyncOperation,
)

logger = logging.getLogger(__name__)

ARABIC_WEEKDAYS = ["الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"]

SESSION_FIELDS = [name for name in LessonSessionIn.model_fields if name != "id"]

_INSERT_SESSION = "INSERT INTO sessions (id, journal_id, {}) VALUES (:id, :journal_id, {})".format(
    ", ".join(SESSION_FIELDS), ", ".join(f":{name}" for name in SESSION_FIELDS)
)
_UPDATE_SESSION = "UPDATE sessions SET {} WHERE id = :id".format(
    ", ".join(f"{name} = :{name}" for name in SESSION_FIELDS)
)


def _session_params(session: LessonSessionIn) -> dict:
    return session.model_dump(mode="json", include=set(SESSION_FIELDS))


def _enum_or_none(enum, value):
    if value is None:
        return None
    try:
        return enum(str(value).upper())
    except ValueError:
        logger.warning("Unknown %s value %r, using the default", enum.__name__, value)
        return None


def _session_out(row: dict) -> LessonSessionOut:
    row = dict(row, category=_enum_or_none(SessionCategory, row.get("category")),
               period=_enum_or_none(Period, row.get("period")))
    # columns added by migration are NULL on old rows
    return LessonSessionOut.model_validate({k: v for k, v in row.items() if v is not None})


def ensure_journal(tx: Transaction, teacher_id: str, journal_date: date) -> str:
    """Return the id of the teacher's journal for the date, creating it if needed."""
    existing = tx.query_one(
        "SELECT id FROM daily_journals WHERE teacher_id = :teacher_id AND journal_date = :journal_date",
        {"teacher_id": teacher_id, "journal_date": journal_date.isoformat()},
    )
    if existing:
        return existing["id"]

    journal_id = new_id()
    tx.run(
        "INSERT INTO daily_journals (id, teacher_id, journal_date) VALUES (:id, :teacher_id, :journal_date)",
        {"id": journal_id, "teacher_id": teacher_id, "journal_date": journal_date.isoformat()},
    )
    return journal_id


def insert_session(tx: Transaction, teacher_id: str, journal_date: date, session: LessonSessionIn) -> str:
    journal_id = ensure_journal(tx, teacher_id, journal_date)
    session_id = session.id or new_id()
    tx.run(_INSERT_SESSION, {"id": session_id, "journal_id": journal_id, **_session_params(session)})

    payload = session.model_dump(mode="json", by_alias=True)
    payload.update(id=session_id, journalId=journal_id, date=journal_date.isoformat())
    sync.enqueue(tx, "sessions", session_id, SyncOperation.INSERT, payload)
    return session_id


def get_daily(db: Database, teacher_id: str, journal_date: date) -> Optional[JournalOut]:
    try:
        journal = db.query_one(
            """
            SELECT id, teacher_id, journal_date FROM daily_journals
            WHERE teacher_id = :teacher_id AND journal_date = :journal_date
            """,
            {"teacher_id": teacher_id, "journal_date": journal_date.isoformat()},
        )
        if not journal:
            return None
        sessions = db.query_all(
            "SELECT * FROM sessions WHERE journal_id = :journal_id ORDER BY start_time ASC",
            {"journal_id": journal["id"]},
        )
        return JournalOut(
            id=journal["id"],
            teacher_id=journal["teacher_id"],
            date=journal["journal_date"],
            day_name=ARABIC_WEEKDAYS[journal_date.weekday()],
            sessions=[_session_out(row) for row in sessions],
        )
    except (SQLAlchemyError, ValidationError):
        logger.exception("Get journal error for %s on %s", teacher_id, journal_date)
        return None


def add_session(db: Database, teacher_id: str, journal_date: date, session: LessonSessionIn) -> bool:
    try:
        with db.transaction() as tx:
            session_id = insert_session(tx, teacher_id, journal_date, session)
    except SQLAlchemyError:
        logger.exception("Add session error for %s on %s", teacher_id, journal_date)
        return False
    logger.debug("Added session %s", session_id)
    return True


def update_session(db: Database, session_id: str, session: LessonSessionIn) -> bool:
    try:
        with db.transaction() as tx:
            if not tx.run(_UPDATE_SESSION, {"id": session_id, **_session_params(session)}):
                return False
            payload = session.model_dump(mode="json", by_alias=True)
            payload["id"] = session_id
            sync.enqueue(tx, "sessions", session_id, SyncOperation.UPDATE, payload)
    except SQLAlchemyError:
        logger.exception("Update session error for %s", session_id)
        return False
    return True


def delete_session(db: Database, session_id: str) -> bool:
    try:
        with db.transaction() as tx:
            if not tx.run("DELETE FROM sessions WHERE id = :id", {"id": session_id}):
                return False
            sync.enqueue(tx, "sessions", session_id, SyncOperation.DELETE, {"id": session_id})
    except SQLAlchemyError:
        logger.exception("Delete session error for %s", session_id)
        return False
    return True


def get_teacher_journals(db: Database, teacher_id: str) -> List[JournalSummary]:
    try:
        rows = db.query_all(
            """
            SELECT dj.id, dj.journal_date, COUNT(s.id) AS session_count
            FROM daily_journals dj
            LEFT JOIN sessions s ON s.journal_id = dj.id
            WHERE dj.teacher_id = :teacher_id
            GROUP BY dj.id
            ORDER BY dj.journal_date DESC
            """,
            {"teacher_id": teacher_id},
        )
    except SQLAlchemyError:
        logger.exception("Get teacher journals error for %s", teacher_id)
        return []
    return [JournalSummary.model_validate(row) for row in rows]
