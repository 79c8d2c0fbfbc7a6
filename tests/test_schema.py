import logging

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

import schema
from database import Base, Database, new_id


def column_names(db, table):
    return [col["name"] for col in inspect(db.engine).get_columns(table)]


def index_names(db, table):
    return {index["name"] for index in inspect(db.engine).get_indexes(table)}


def test_migrate_creates_every_table(db):
    assert schema.missing_tables(db) == set()
    assert set(Base.metadata.tables) <= set(inspect(db.engine).get_table_names())


def test_migrate_twice_is_harmless(db):
    before = {table: column_names(db, table) for table in Base.metadata.tables}

    schema.migrate(db)
    schema.migrate(db)

    after = {table: column_names(db, table) for table in Base.metadata.tables}
    assert after == before
    for columns in after.values():
        assert len(columns) == len(set(columns))


def test_indexes_are_created(db):
    assert "idx_sessions_journal" in index_names(db, "sessions")
    assert {"idx_journals_teacher", "idx_journals_date"} <= index_names(db, "daily_journals")
    assert "idx_sync_queue_created" in index_names(db, "sync_queue")
    assert "idx_grades_student" in index_names(db, "grades")


def test_legacy_sessions_table_gains_new_columns():
    database = Database().open()
    try:
        database.run_statement(
            "CREATE TABLE sessions (id TEXT PRIMARY KEY, journal_id TEXT NOT NULL, subject TEXT, title TEXT)"
        )
        database.run_statement("INSERT INTO sessions (id, journal_id, title) VALUES ('old', 'j1', 'Fractions')")

        schema.migrate(database)

        columns = column_names(database, "sessions")
        for name in ("category", "period", "section_id", "unity_number", "holiday_name", "integration_type"):
            assert name in columns
        row = database.query_one("SELECT title, category, period, section_number FROM sessions WHERE id = 'old'")
        assert row == {"title": "Fractions", "category": "LESSON", "period": "MORNING", "section_number": None}
        assert "idx_sessions_journal" in index_names(database, "sessions")
    finally:
        database.close()


def test_add_missing_columns_reports_what_it_added(db):
    with db.engine.begin() as connection:
        assert schema.add_missing_columns(connection, schema.EVOLVING_TABLES[0]) == []


def test_failed_column_extension_does_not_abort_migration(db, monkeypatch, caplog):
    def broken(connection, table):
        raise OperationalError("ALTER TABLE", {}, Exception("database is locked"))

    monkeypatch.setattr(schema, "add_missing_columns", broken)

    with caplog.at_level(logging.ERROR, logger="schema"):
        schema.migrate(db)

    assert "Migration error while extending table sessions" in caplog.text
    assert schema.missing_tables(db) == set()


def test_missing_tables_reports_dropped_table(db):
    db.run_statement("DROP TABLE admin_messages")
    assert schema.missing_tables(db) == {"admin_messages"}

    schema.migrate(db)
    assert schema.missing_tables(db) == set()


def test_ensure_table_only_creates_absent_tables(db):
    table = Base.metadata.tables["sync_queue"]
    with db.transaction() as tx:
        assert schema.ensure_table(tx, table) is False

    db.run_statement("DROP TABLE sync_queue")
    with db.transaction() as tx:
        assert schema.ensure_table(tx, table) is True
        tx.run(
            "INSERT INTO sync_queue (table_name, record_id, operation) VALUES ('profiles', :id, 'INSERT')",
            {"id": new_id()},
        )

    assert db.query_one("SELECT COUNT(*) AS n FROM sync_queue")["n"] == 1
