import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI

import admin
import auth
import grading
import journal
import models
import repository
import schema
import seed
import students
import sync
from config import Settings, load_settings
from database import Database, get_db
from session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)


def init_database(settings: Settings) -> Database:
    """Open the database file, migrate it and seed first-run data."""
    db = Database(settings.db_path).open()
    schema.migrate(db)
    missing = schema.missing_tables(db)
    if missing:
        logger.error("Tables still missing after migration: %s", ", ".join(sorted(missing)))
    seed.run(db, settings.fixtures_dir, demo=settings.seed_demo)
    return db


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logger.info("Database path: %s", settings.db_path)

    app.state.settings = settings
    app.state.db = init_database(settings)
    app.state.session_store = SessionStore(settings.session_path)
    try:
        yield
    finally:
        app.state.db.close()


# Handlers stay `async def`: they run one at a time on the event loop and
# share the single database connection.
app = FastAPI(title="Tamkeen Journal", lifespan=lifespan)


# ========== Auth ==========
@app.post("/auth/register", response_model=models.RegisterResult)
async def register(data: models.RegisterRequest, db: Database = Depends(get_db),
                   store: SessionStore = Depends(get_session_store)):
    return auth.register(db, store, data)


@app.post("/auth/login", response_model=models.LoginResult)
async def login(data: models.LoginRequest, db: Database = Depends(get_db),
                store: SessionStore = Depends(get_session_store)):
    return auth.login(db, store, data.email, data.password)


@app.post("/auth/external-login", response_model=models.LoginResult)
async def external_login(user: models.ExternalUser, db: Database = Depends(get_db),
                         store: SessionStore = Depends(get_session_store)):
    return auth.external_login(db, store, user)


@app.post("/auth/logout")
async def logout(store: SessionStore = Depends(get_session_store)):
    auth.logout(store)
    return {"success": True}


@app.get("/auth/session", response_model=Optional[models.SessionData])
async def get_session(store: SessionStore = Depends(get_session_store)):
    return auth.get_current_session(store)


@app.put("/auth/profile/{user_id}")
async def update_profile(user_id: str, metadata: models.ProfileMetadata, db: Database = Depends(get_db),
                         store: SessionStore = Depends(get_session_store)) -> bool:
    return auth.update_profile(db, store, user_id, metadata)


@app.get("/auth/users", response_model=List[models.UserOut])
async def get_all_users(db: Database = Depends(get_db)):
    return auth.get_all_users(db)


@app.get("/auth/is-admin/{user_id}")
async def is_admin(user_id: str, db: Database = Depends(get_db)) -> bool:
    return auth.is_admin(db, user_id)


# ========== Journal ==========
@app.get("/journal/{teacher_id}", response_model=List[models.JournalSummary])
async def get_teacher_journals(teacher_id: str, db: Database = Depends(get_db)):
    return journal.get_teacher_journals(db, teacher_id)


@app.get("/journal/{teacher_id}/{journal_date}", response_model=Optional[models.JournalOut])
async def get_daily(teacher_id: str, journal_date: date, db: Database = Depends(get_db)):
    return journal.get_daily(db, teacher_id, journal_date)


@app.post("/journal/{teacher_id}/{journal_date}/sessions")
async def add_session(teacher_id: str, journal_date: date, session: models.LessonSessionIn,
                      db: Database = Depends(get_db)) -> bool:
    return journal.add_session(db, teacher_id, journal_date, session)


@app.put("/journal/sessions/{session_id}")
async def update_session(session_id: str, session: models.LessonSessionIn,
                         db: Database = Depends(get_db)) -> bool:
    return journal.update_session(db, session_id, session)


@app.delete("/journal/sessions/{session_id}")
async def delete_session(session_id: str, db: Database = Depends(get_db)) -> bool:
    return journal.delete_session(db, session_id)


# ========== Students ==========
@app.get("/students/")
async def get_students(teacher_id: str, grade: Optional[str] = None, group: Optional[str] = None,
                       db: Database = Depends(get_db)):
    return students.get_students(db, teacher_id, grade, group)


@app.post("/students/", response_model=models.SaveResult)
async def add_student(student: models.StudentIn, db: Database = Depends(get_db)):
    return students.add_student(db, student)


@app.put("/students/{student_id}", response_model=models.SaveResult)
async def update_student(student_id: str, student: models.StudentIn, db: Database = Depends(get_db)):
    return students.update_student(db, student_id, student)


@app.delete("/students/{student_id}", response_model=models.SaveResult)
async def delete_student(student_id: str, db: Database = Depends(get_db)):
    return students.delete_student(db, student_id)


# ========== Grades ==========
@app.get("/grades/")
async def get_grades(teacher_id: str, subject: str, term: str, grade: Optional[str] = None,
                     group: Optional[str] = None, db: Database = Depends(get_db)):
    return grading.get_grades(db, teacher_id, subject, term, grade, group)


@app.post("/grades/", response_model=models.SaveResult)
async def save_grade(grade: models.GradeIn, db: Database = Depends(get_db)):
    return grading.save_grade(db, grade)


# ========== Sync queue ==========
@app.get("/sync/pending", response_model=List[models.SyncItem])
async def get_pending(db: Database = Depends(get_db)):
    return sync.get_pending(db)


@app.post("/sync/clear")
async def clear_pending(data: models.ClearRequest, db: Database = Depends(get_db)) -> bool:
    return sync.remove(db, data.ids)


# ========== Repository ==========
@app.get("/repository/wilayas")
async def get_wilayas(db: Database = Depends(get_db)):
    return repository.get_wilayas(db)


@app.get("/repository/levels")
async def get_levels(db: Database = Depends(get_db)):
    return repository.get_levels(db)


@app.get("/repository/years")
async def get_years(level_id: Optional[str] = None, db: Database = Depends(get_db)):
    return repository.get_years(db, level_id)


@app.get("/repository/streams")
async def get_streams(db: Database = Depends(get_db)):
    return repository.get_streams(db)


@app.get("/repository/subjects")
async def get_subjects(db: Database = Depends(get_db)):
    return repository.get_subjects(db)


@app.get("/repository/curriculum")
async def get_curriculum(year_id: str, stream_id: Optional[str] = None, db: Database = Depends(get_db)):
    return repository.get_curriculum(db, year_id, stream_id)


@app.get("/repository/competencies")
async def get_competencies(subject_id: str, year_id: str, db: Database = Depends(get_db)):
    return repository.get_competencies(db, subject_id, year_id)


# ========== Admin ==========
@app.post("/admin/import", response_model=models.ImportResult)
async def import_data(data: models.ImportPayload, db: Database = Depends(get_db)):
    return admin.import_teacher_data(db, data)


@app.post("/admin/messages", response_model=models.SaveResult)
async def send_message(data: models.MessageIn, db: Database = Depends(get_db)):
    message_id = admin.send_message(db, data.to_user, data.message)
    return models.SaveResult(success=message_id is not None, id=message_id)


@app.get("/admin/messages/{user_id}")
async def get_messages(user_id: str, unread_only: bool = False, db: Database = Depends(get_db)):
    return admin.get_messages(db, user_id, unread_only)


@app.post("/admin/messages/{message_id}/read")
async def mark_read(message_id: str, db: Database = Depends(get_db)) -> bool:
    return admin.mark_read(db, message_id)


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
