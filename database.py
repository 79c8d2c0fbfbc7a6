"""
SQLite persistence: table definitions and the record access layer.

The mapped classes below only describe the schema (DDL, indexes, foreign
keys) for `schema.migrate`. Services never query through them; they issue
`text()` statements via `Database` and `Transaction` and get plain dict rows.
"""
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from fastapi import Request
from sqlalchemy import (
    Column, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, create_engine, inspect, text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func
from sqlalchemy.sql.expression import Executable

logger = logging.getLogger(__name__)

Base = declarative_base()

Params = Optional[Dict[str, Any]]
Statement = Union[str, Executable]


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String)
    role = Column(String, server_default="teacher")
    metadata_json = Column("metadata", Text)
    created_at = Column(String, server_default=func.current_timestamp())
    updated_at = Column(String, server_default=func.current_timestamp())


class DailyJournal(Base):
    __tablename__ = "daily_journals"
    id = Column(String, primary_key=True)
    teacher_id = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    journal_date = Column(String, nullable=False)
    created_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        UniqueConstraint("teacher_id", "journal_date"),
        Index("idx_journals_teacher", "teacher_id"),
        Index("idx_journals_date", "journal_date"),
    )


class LessonSession(Base):
    """One lesson, break, exam... entry inside a daily journal."""
    __tablename__ = "sessions"
    id = Column(String, primary_key=True)
    journal_id = Column(String, ForeignKey("daily_journals.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String)
    activity = Column(String)
    title = Column(String)
    objective = Column(Text)
    content = Column(Text)
    tools = Column(Text)
    notes = Column(Text)
    start_time = Column(String)
    end_time = Column(String)
    category = Column(String, server_default="LESSON")
    period = Column(String, server_default="MORNING")
    # curriculum linkage, added after the first release
    section_id = Column(String)
    section_name = Column(String)
    section_number = Column(Integer)
    unity_number = Column(Integer)
    session_number = Column(Integer)
    holiday_name = Column(String)
    break_duration = Column(Integer)
    exam_type = Column(String)
    support_type = Column(String)
    training_type = Column(String)
    integration_type = Column(String)
    created_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        Index("idx_sessions_journal", "journal_id"),
    )


class AdminMessage(Base):
    __tablename__ = "admin_messages"
    id = Column(String, primary_key=True)
    to_user = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Integer, server_default="0")
    created_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        Index("idx_messages_user", "to_user"),
    )


class SyncQueueItem(Base):
    __tablename__ = "sync_queue"
    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(String, nullable=False)
    record_id = Column(String, nullable=False)
    operation = Column(String, nullable=False)
    payload = Column(Text)
    created_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        Index("idx_sync_queue_created", "created_at"),
        {"sqlite_autoincrement": True},
    )


class Student(Base):
    __tablename__ = "students"
    id = Column(String, primary_key=True)
    teacher_id = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    full_name = Column(String, nullable=False)
    registration_number = Column(String)
    birth_date = Column(String)
    level = Column(String)
    grade = Column(String)
    group_name = Column(String)
    parent_phone = Column(String)
    notes = Column(Text)
    created_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        Index("idx_students_teacher", "teacher_id"),
    )


class Grade(Base):
    __tablename__ = "grades"
    id = Column(String, primary_key=True)
    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(String, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String, nullable=False)
    term = Column(String, server_default="1")
    evaluation1 = Column(Float)
    evaluation2 = Column(Float)
    evaluation3 = Column(Float)
    exam = Column(Float)
    average = Column(Float)
    notes = Column(Text)
    updated_at = Column(String, server_default=func.current_timestamp())

    __table_args__ = (
        UniqueConstraint("student_id", "subject", "term"),
        Index("idx_grades_student", "student_id"),
    )


# ========== Reference data ==========
class Wilaya(Base):
    __tablename__ = "wilayas"
    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(String, unique=True, nullable=False)
    name_ar = Column(String, nullable=False)
    name_en = Column(String)
    name_fr = Column(String)


class EducationLevel(Base):
    __tablename__ = "education_levels"
    id = Column(String, primary_key=True)
    name_ar = Column(String, nullable=False)
    name_en = Column(String)
    description = Column(Text)


class EducationYear(Base):
    __tablename__ = "education_years"
    id = Column(String, primary_key=True)
    level_id = Column(String, ForeignKey("education_levels.id"), nullable=False)
    name_ar = Column(String, nullable=False)
    name_en = Column(String)
    ordering = Column(Integer)


class Stream(Base):
    __tablename__ = "streams"
    id = Column(String, primary_key=True)
    name_ar = Column(String, nullable=False)
    name_en = Column(String)


class Subject(Base):
    __tablename__ = "subjects"
    id = Column(String, primary_key=True)
    name_ar = Column(String, nullable=False)
    name_en = Column(String)
    name_fr = Column(String)
    category = Column(String)


class Curriculum(Base):
    __tablename__ = "curriculum"
    id = Column(String, primary_key=True)
    year_id = Column(String, ForeignKey("education_years.id"), nullable=False)
    stream_id = Column(String, ForeignKey("streams.id"))
    subject_id = Column(String, ForeignKey("subjects.id"), nullable=False)
    coefficient = Column(Float, server_default="1")
    weekly_hours = Column(Float, server_default="1")


class Competency(Base):
    __tablename__ = "competencies"
    id = Column(String, primary_key=True)
    subject_id = Column(String, ForeignKey("subjects.id"), nullable=False)
    year_id = Column(String, ForeignKey("education_years.id"), nullable=False)
    domain = Column(String)
    competency_text = Column(Text, nullable=False)


# ========== Record access ==========
class DatabaseNotInitializedError(RuntimeError):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def error_message(exc: Exception) -> str:
    # driver message without SQLAlchemy's statement dump
    return str(getattr(exc, "orig", None) or exc)


def _statement(sql: Statement) -> Executable:
    return text(sql) if isinstance(sql, str) else sql


class Transaction:
    """Statements issued through one open connection, committed together."""

    def __init__(self, connection: Connection):
        self.connection = connection

    def query_all(self, sql: Statement, params: Params = None) -> List[Dict[str, Any]]:
        result = self.connection.execute(_statement(sql), params or {})
        return [dict(row) for row in result.mappings()]

    def query_one(self, sql: Statement, params: Params = None) -> Optional[Dict[str, Any]]:
        rows = self.query_all(sql, params)
        return rows[0] if rows else None

    def run(self, sql: Statement, params: Params = None) -> int:
        return self.connection.execute(_statement(sql), params or {}).rowcount

    def has_table(self, name: str) -> bool:
        return inspect(self.connection).has_table(name)


class Database:
    """
    In-memory SQLite database mirrored to a single file.

    The file is read once by open() and rewritten in full after every
    committed mutation. With path=None nothing touches the disk.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._connection: Optional[sqlite3.Connection] = None
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DatabaseNotInitializedError("Database not initialized. Call open() first.")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Database":
        if self._engine is not None:
            return self

        connection = sqlite3.connect(":memory:", check_same_thread=False)
        if self.path is not None and self.path.exists() and self.path.stat().st_size > 0:
            connection.deserialize(self.path.read_bytes())
            logger.info("Loaded existing database from %s", self.path)
        else:
            logger.info("Created new database (path: %s)", self.path)
        connection.execute("PRAGMA foreign_keys = ON")

        self._connection = connection
        self._engine = create_engine("sqlite://", creator=lambda: connection, poolclass=StaticPool)
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self.save()
        self._engine.dispose()
        self._connection.close()
        self._engine = None
        self._connection = None
        logger.info("Database connection closed")

    def save(self) -> None:
        if self._connection is None or self.path is None:
            return
        data = self._connection.serialize()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, self.path)
        logger.debug("Database saved to %s (%d bytes)", self.path, len(data))

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self.engine.begin() as connection:
            yield Transaction(connection)
        self.save()

    def query_all(self, sql: Statement, params: Params = None) -> List[Dict[str, Any]]:
        with self.engine.connect() as connection:
            return Transaction(connection).query_all(sql, params)

    def query_one(self, sql: Statement, params: Params = None) -> Optional[Dict[str, Any]]:
        rows = self.query_all(sql, params)
        return rows[0] if rows else None

    def run_statement(self, sql: Statement, params: Params = None) -> None:
        with self.transaction() as tx:
            tx.run(sql, params)


def get_db(request: Request) -> Database:
    return request.app.state.db
