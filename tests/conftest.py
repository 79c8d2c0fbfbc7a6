import sys
from pathlib import Path

import pytest

# project root on PYTHONPATH
sys.path.insert(0, str(Path(__file__).parent.parent))

import schema
from database import Database, new_id
from session_store import SessionStore


@pytest.fixture
def db():
    database = Database().open()
    schema.migrate(database)
    try:
        yield database
    finally:
        database.close()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def teacher_id(db):
    profile_id = new_id()
    db.run_statement(
        "INSERT INTO profiles (id, email, password_hash, full_name) VALUES (:id, :email, 'x', :name)",
        {"id": profile_id, "email": f"{profile_id[:8]}@school.dz", "name": "Test Teacher"},
    )
    return profile_id


def count(db, table, where="1 = 1", params=None):
    return db.query_one(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}", params)["n"]
