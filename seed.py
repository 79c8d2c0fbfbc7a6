import logging
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

import repository
import sync
from auth import dump_metadata, get_password_hash, tamkeen_id_for
from database import Database, new_id
from models import ProfileMetadata, Role, SyncOperation

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@tamkeen.local"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_NAME = "مدير النظام"

DEMO_STUDENTS = [
    ("أحمد بن محمد", "1", "أ"),
    ("سارة علي", "1", "أ"),
    ("يوسف كمال", "1", "أ"),
    ("فاطمة الزهراء", "1", "أ"),
    ("عمر خالد", "1", "أ"),
]


def create_default_admin(db: Database) -> bool:
    """Create the built-in admin account on first run. Returns True when created."""
    count = db.query_one("SELECT COUNT(*) AS count FROM profiles WHERE role = :role", {"role": Role.ADMIN.value})
    if count["count"]:
        return False

    admin_id = new_id()
    metadata = ProfileMetadata(
        tamkeen_id=tamkeen_id_for(admin_id),
        name=DEFAULT_ADMIN_NAME,
        email=DEFAULT_ADMIN_EMAIL,
        role=Role.ADMIN,
        institution="إدارة تمكين",
        level="ADMIN",
        academic_year="2024/2025",
        preferred_shift="FULL",
        teaching_language="ar",
    )
    with db.transaction() as tx:
        tx.run(
            """
            INSERT INTO profiles (id, email, password_hash, full_name, role, metadata)
            VALUES (:id, :email, :password_hash, :full_name, :role, :metadata)
            """,
            {
                "id": admin_id,
                "email": DEFAULT_ADMIN_EMAIL,
                "password_hash": get_password_hash(DEFAULT_ADMIN_PASSWORD),
                "full_name": DEFAULT_ADMIN_NAME,
                "role": Role.ADMIN.value,
                "metadata": dump_metadata(metadata),
            },
        )
        sync.enqueue(tx, "profiles", admin_id, SyncOperation.INSERT,
                     {"id": admin_id, "email": DEFAULT_ADMIN_EMAIL, "full_name": DEFAULT_ADMIN_NAME,
                      "role": Role.ADMIN.value})
    logger.info("Default admin created: %s", DEFAULT_ADMIN_EMAIL)
    return True


def seed_demo_students(db: Database) -> int:
    admin = db.query_one("SELECT id FROM profiles WHERE role = :role LIMIT 1", {"role": Role.ADMIN.value})
    if not admin:
        return 0
    count = db.query_one("SELECT COUNT(*) AS count FROM students WHERE teacher_id = :id", {"id": admin["id"]})
    if count["count"]:
        return 0

    logger.info("Seeding demo students...")
    with db.transaction() as tx:
        for full_name, grade, group_name in DEMO_STUDENTS:
            tx.run(
                """
                INSERT INTO students (id, teacher_id, full_name, grade, group_name)
                VALUES (:id, :teacher_id, :full_name, :grade, :group_name)
                """,
                {"id": new_id(), "teacher_id": admin["id"], "full_name": full_name, "grade": grade,
                 "group_name": group_name},
            )
    return len(DEMO_STUDENTS)


def run(db: Database, fixtures_dir: Path, demo: bool = True) -> None:
    """First-run data: admin account, demo roster, reference repository."""
    create_default_admin(db)
    if demo:
        seed_demo_students(db)
    try:
        repository.initialize_repository(db, fixtures_dir)
    except (SQLAlchemyError, OSError, ValueError, KeyError):
        # rolled back as a whole, retried on next startup
        logger.exception("Error while seeding the knowledge repository")
