import pytest
from sqlalchemy.exc import IntegrityError

import schema
from conftest import count
from database import Database, DatabaseNotInitializedError, new_id


def insert_profile(db, email="t@school.dz"):
    profile_id = new_id()
    db.run_statement(
        "INSERT INTO profiles (id, email, password_hash) VALUES (:id, :email, 'x')",
        {"id": profile_id, "email": email},
    )
    return profile_id


def test_query_all_without_matches_returns_empty_list(db):
    assert db.query_all("SELECT * FROM profiles WHERE email = :email", {"email": "nobody@x.dz"}) == []


def test_query_one_without_matches_returns_none(db):
    assert db.query_one("SELECT * FROM profiles WHERE id = :id", {"id": "missing"}) is None


def test_rows_are_named_field_dicts_in_query_order(db):
    insert_profile(db, "b@school.dz")
    insert_profile(db, "a@school.dz")

    rows = db.query_all("SELECT email, role FROM profiles ORDER BY email")

    assert rows == [
        {"email": "a@school.dz", "role": "teacher"},
        {"email": "b@school.dz", "role": "teacher"},
    ]


def test_access_before_open_fails():
    database = Database()
    with pytest.raises(DatabaseNotInitializedError):
        database.query_all("SELECT 1")
    with pytest.raises(DatabaseNotInitializedError):
        database.run_statement("SELECT 1")


def test_access_after_close_fails(db):
    db.close()
    db.close()
    with pytest.raises(DatabaseNotInitializedError):
        db.query_one("SELECT 1")


def test_run_statement_writes_whole_database_to_disk(tmp_path):
    path = tmp_path / "tamkeen.db"
    database = Database(path).open()
    schema.migrate(database)
    profile_id = insert_profile(database)

    # a second handle sees the file as it is right now, without close()
    reopened = Database(path).open()
    try:
        row = reopened.query_one("SELECT email FROM profiles WHERE id = :id", {"id": profile_id})
        assert row == {"email": "t@school.dz"}
    finally:
        reopened.close()
        database.close()

    assert not (tmp_path / "tamkeen.db.tmp").exists()


def test_in_memory_database_never_touches_disk(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    database = Database().open()
    schema.migrate(database)
    insert_profile(database)
    database.close()
    assert list(tmp_path.iterdir()) == []


def test_failed_transaction_rolls_back_every_statement(db):
    with pytest.raises(IntegrityError):
        with db.transaction() as tx:
            tx.run("INSERT INTO profiles (id, email, password_hash) VALUES ('1', 'dup@school.dz', 'x')")
            tx.run("INSERT INTO profiles (id, email, password_hash) VALUES ('2', 'dup@school.dz', 'x')")

    assert count(db, "profiles") == 0


def test_unique_violation_surfaces_from_run_statement(db):
    insert_profile(db, "same@school.dz")
    with pytest.raises(IntegrityError):
        insert_profile(db, "same@school.dz")


def test_deleting_a_profile_cascades_to_its_rows(db):
    profile_id = insert_profile(db)
    db.run_statement(
        "INSERT INTO students (id, teacher_id, full_name) VALUES (:id, :teacher_id, 'Amine')",
        {"id": new_id(), "teacher_id": profile_id},
    )

    db.run_statement("DELETE FROM profiles WHERE id = :id", {"id": profile_id})

    assert count(db, "students") == 0


def test_foreign_keys_are_enforced(db):
    with pytest.raises(IntegrityError):
        db.run_statement(
            "INSERT INTO students (id, teacher_id, full_name) VALUES ('s1', 'no-such-teacher', 'Amine')"
        )
