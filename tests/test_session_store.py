import json

from models import ProfileMetadata, Role, SessionData
from session_store import SessionStore


def make_session():
    return SessionData(
        user_id="u-1",
        email="teacher@school.dz",
        role=Role.TEACHER,
        profile=ProfileMetadata(name="أستاذ", tamkeen_id="U-1"),
    )


def test_session_survives_restart(tmp_path):
    path = tmp_path / "session.json"
    SessionStore(path).set(make_session())

    restored = SessionStore(path).get()

    assert restored == make_session()


def test_file_uses_camel_case_keys(tmp_path):
    path = tmp_path / "session.json"
    SessionStore(path).set(make_session())

    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["session"]["userId"] == "u-1"
    assert data["session"]["profile"]["tamkeenId"] == "U-1"


def test_clear_forgets_session(tmp_path):
    path = tmp_path / "session.json"
    store = SessionStore(path)
    store.set(make_session())

    store.clear()

    assert store.get() is None
    assert SessionStore(path).get() is None


def test_unreadable_file_starts_logged_out(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{broken", encoding="utf-8")
    assert SessionStore(path).get() is None

    path.write_text(json.dumps({"session": {"userId": "u-1"}}), encoding="utf-8")
    assert SessionStore(path).get() is None


def test_missing_directory_is_created(tmp_path):
    path = tmp_path / "nested" / "session.json"
    SessionStore(path).set(make_session())
    assert path.exists()


def test_memory_only_store():
    store = SessionStore()
    assert store.get() is None
    store.set(make_session())
    assert store.get().email == "teacher@school.dz"
