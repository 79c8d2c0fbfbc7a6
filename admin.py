import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

import sync
from auth import IMPORTED_PASSWORD_HASH, dump_metadata, tamkeen_id_for
from database import Database, error_message, new_id
from journal import insert_session
from models import ImportPayload, ImportResult, SyncOperation

logger = logging.getLogger(__name__)


def import_teacher_data(db: Database, data: ImportPayload) -> ImportResult:
    """
    Load a teacher's profile and journal sessions exported from another install.

    The profile is matched by email: an existing one gets its name and
    metadata replaced, otherwise a new profile is created that cannot log in
    by password. Sessions are added to the journals of their dates. Either
    everything is imported or nothing is.
    """
    profile = data.profile
    created = False
    try:
        with db.transaction() as tx:
            existing = tx.query_one("SELECT id FROM profiles WHERE lower(email) = lower(:email)",
                                     {"email": profile.email})
            if existing:
                profile_id = existing["id"]
                metadata = profile.metadata.model_copy(update={"email": profile.email, "role": profile.role})
                tx.run(
                    """
                    UPDATE profiles SET full_name = :full_name, metadata = :metadata, updated_at = CURRENT_TIMESTAMP
                    WHERE id = :id
                    """,
                    {"id": profile_id, "full_name": profile.name or metadata.name or "",
                     "metadata": dump_metadata(metadata)},
                )
                operation = SyncOperation.UPDATE
            else:
                profile_id = new_id()
                created = True
                metadata = profile.metadata.model_copy(update={
                    "email": profile.email,
                    "role": profile.role,
                    "tamkeen_id": profile.metadata.tamkeen_id or tamkeen_id_for(profile_id),
                })
                tx.run(
                    """
                    INSERT INTO profiles (id, email, password_hash, full_name, role, metadata)
                    VALUES (:id, :email, :password_hash, :full_name, :role, :metadata)
                    """,
                    {"id": profile_id, "email": profile.email, "password_hash": IMPORTED_PASSWORD_HASH,
                     "full_name": profile.name or metadata.name or "", "role": profile.role.value,
                     "metadata": dump_metadata(metadata)},
                )
                operation = SyncOperation.INSERT
            sync.enqueue(tx, "profiles", profile_id, operation,
                         {"id": profile_id, "email": profile.email, "full_name": profile.name,
                          "role": profile.role.value})

            for session in data.sessions:
                insert_session(tx, profile_id, session.date, session)
    except SQLAlchemyError as e:
        logger.exception("Import error for %s", profile.email)
        return ImportResult(success=False, error=error_message(e))

    logger.info("Imported %d sessions for %s", len(data.sessions), profile.email)
    return ImportResult(success=True, profile_id=profile_id, created_profile=created,
                        sessions_imported=len(data.sessions))


# ========== Messages ==========
def send_message(db: Database, to_user: str, message: str) -> Optional[str]:
    message_id = new_id()
    try:
        db.run_statement(
            "INSERT INTO admin_messages (id, to_user, message) VALUES (:id, :to_user, :message)",
            {"id": message_id, "to_user": to_user, "message": message},
        )
    except SQLAlchemyError:
        logger.exception("Send message error for %s", to_user)
        return None
    return message_id


def get_messages(db: Database, user_id: str, unread_only: bool = False) -> List[dict]:
    sql = "SELECT * FROM admin_messages WHERE to_user = :user_id"
    if unread_only:
        sql += " AND read = 0"
    return db.query_all(sql + " ORDER BY created_at DESC", {"user_id": user_id})


def mark_read(db: Database, message_id: str) -> bool:
    with db.transaction() as tx:
        return tx.run("UPDATE admin_messages SET read = 1 WHERE id = :id", {"id": message_id}) > 0
