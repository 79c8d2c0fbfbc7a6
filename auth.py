import json
import logging
import re
from typing import List, Optional

from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError

import sync
from database import Database, new_id
from models import (
    ExternalUser, LoginResult, ProfileMetadata, RegisterRequest, RegisterResult, Role, SessionData,
    SyncOperation, UserOut,
)
from session_store import SessionStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PHONE_RE = re.compile(r"^0[567][0-9]{8}$")

# password_hash values of accounts that cannot log in with a password
EXTERNAL_PASSWORD_HASH = "oauth_google"
IMPORTED_PASSWORD_HASH = "imported"

ERR_INVALID_EMAIL = "البريد الإلكتروني غير صالح"
ERR_INVALID_PHONE = "رقم الهاتف غير صالح (يجب أن يبدأ بـ 05, 06, أو 07)"
ERR_EMAIL_TAKEN = "البريد الإلكتروني مستخدم بالفعل"
ERR_UNKNOWN_EMAIL = "البريد الإلكتروني غير مسجل"
ERR_EXTERNAL_ACCOUNT = "تم التسجيل عبر Google. يرجى استخدام زر الدخول عبر Google."
ERR_NO_PASSWORD = "لا توجد كلمة مرور لهذا الحساب"
ERR_WRONG_PASSWORD = "كلمة المرور غير صحيحة"
ERR_REGISTER_FAILED = "فشل التسجيل"
ERR_LOGIN_FAILED = "فشل تسجيل الدخول"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # passlib raises ValueError for hashes it cannot identify
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash is not a recognised format")
        return False


def tamkeen_id_for(user_id: str) -> str:
    return user_id[:8].upper()


def parse_metadata(raw: Optional[str]) -> ProfileMetadata:
    try:
        return ProfileMetadata.model_validate(json.loads(raw or "{}"))
    except ValueError:
        logger.warning("Unreadable profile metadata, using defaults")
        return ProfileMetadata()


def dump_metadata(metadata: ProfileMetadata) -> str:
    return json.dumps(metadata.model_dump(mode="json", by_alias=True, exclude_none=True), ensure_ascii=False)


def get_profile_by_email(db: Database, email: str) -> Optional[dict]:
    return db.query_one(
        """
        SELECT id, email, password_hash, full_name, role, metadata FROM profiles
        WHERE lower(email) = lower(:email)
        """,
        {"email": email},
    )


def _profile_payload(user_id: str, email: str, full_name: str, role: Role, metadata: ProfileMetadata) -> dict:
    return {
        "id": user_id,
        "email": email,
        "full_name": full_name,
        "role": role.value,
        "metadata": metadata.model_dump(mode="json", by_alias=True, exclude_none=True),
    }


def _insert_profile(db: Database, user_id: str, email: str, password_hash: str, full_name: str,
                    role: Role, metadata: ProfileMetadata) -> None:
    with db.transaction() as tx:
        tx.run(
            """
            INSERT INTO profiles (id, email, password_hash, full_name, role, metadata)
            VALUES (:id, :email, :password_hash, :full_name, :role, :metadata)
            """,
            {
                "id": user_id,
                "email": email,
                "password_hash": password_hash,
                "full_name": full_name,
                "role": role.value,
                "metadata": dump_metadata(metadata),
            },
        )
        sync.enqueue(tx, "profiles", user_id, SyncOperation.INSERT,
                     _profile_payload(user_id, email, full_name, role, metadata))


def _session_for(row: dict) -> SessionData:
    return SessionData(
        user_id=row["id"],
        email=row["email"],
        role=Role(row["role"] or Role.TEACHER.value),
        profile=parse_metadata(row["metadata"]),
    )


# ========== Registration / login ==========
def register(db: Database, store: SessionStore, data: RegisterRequest) -> RegisterResult:
    if not EMAIL_RE.match(data.email):
        return RegisterResult(success=False, error=ERR_INVALID_EMAIL)
    if data.metadata.phone and not PHONE_RE.match(data.metadata.phone):
        return RegisterResult(success=False, error=ERR_INVALID_PHONE)

    try:
        if get_profile_by_email(db, data.email):
            return RegisterResult(success=False, error=ERR_EMAIL_TAKEN)

        user_id = new_id()
        metadata = data.metadata.model_copy(update={
            "tamkeen_id": data.metadata.tamkeen_id or tamkeen_id_for(user_id),
            "email": data.email,
            "role": Role.TEACHER,
        })
        _insert_profile(db, user_id, data.email, get_password_hash(data.password), data.full_name,
                        Role.TEACHER, metadata)
    except SQLAlchemyError:
        logger.exception("Registration error for %s", data.email)
        return RegisterResult(success=False, error=ERR_REGISTER_FAILED)

    session = SessionData(user_id=user_id, email=data.email, role=Role.TEACHER, profile=metadata)
    store.set(session)
    logger.info("Registered teacher %s", user_id)
    return RegisterResult(success=True, user_id=user_id, session=session)


def login(db: Database, store: SessionStore, email: str, password: str) -> LoginResult:
    try:
        user = get_profile_by_email(db, email)
    except SQLAlchemyError:
        logger.exception("Login error for %s", email)
        return LoginResult(success=False, error=ERR_LOGIN_FAILED)

    if not user:
        return LoginResult(success=False, error=ERR_UNKNOWN_EMAIL)
    if user["password_hash"] == EXTERNAL_PASSWORD_HASH:
        return LoginResult(success=False, error=ERR_EXTERNAL_ACCOUNT)
    if user["password_hash"] == IMPORTED_PASSWORD_HASH:
        return LoginResult(success=False, error=ERR_NO_PASSWORD)
    if not verify_password(password, user["password_hash"]):
        return LoginResult(success=False, error=ERR_WRONG_PASSWORD)

    session = _session_for(user)
    store.set(session)
    return LoginResult(success=True, session=session)


def external_login(db: Database, store: SessionStore, external: ExternalUser) -> LoginResult:
    """Log in a user authenticated by Google, creating the local profile on first visit."""
    if not external.email:
        return LoginResult(success=False, error="No email provided from Google")

    try:
        user = get_profile_by_email(db, external.email)
        if not user:
            name = external.full_name or "Google User"
            metadata = ProfileMetadata(
                email=external.email,
                name=name,
                picture=external.avatar_url,
                tamkeen_id=tamkeen_id_for(external.id),
                role=Role.TEACHER,
                source="google",
            )
            _insert_profile(db, external.id, external.email, EXTERNAL_PASSWORD_HASH, name, Role.TEACHER, metadata)
            user = {"id": external.id, "email": external.email, "role": Role.TEACHER.value,
                    "metadata": dump_metadata(metadata)}
    except SQLAlchemyError:
        logger.exception("External login error for %s", external.email)
        return LoginResult(success=False, error=ERR_LOGIN_FAILED)

    session = _session_for(user)
    store.set(session)
    return LoginResult(success=True, session=session)


def logout(store: SessionStore) -> None:
    store.clear()


def get_current_session(store: SessionStore) -> Optional[SessionData]:
    return store.get()


def is_logged_in(store: SessionStore) -> bool:
    return store.get() is not None


# ========== Profiles ==========
def update_profile(db: Database, store: SessionStore, user_id: str, metadata: ProfileMetadata) -> bool:
    try:
        with db.transaction() as tx:
            updated = tx.run(
                """
                UPDATE profiles
                SET metadata = :metadata, full_name = :full_name, updated_at = CURRENT_TIMESTAMP
                WHERE id = :id
                """,
                {"metadata": dump_metadata(metadata), "full_name": metadata.name or "", "id": user_id},
            )
            if not updated:
                return False
            sync.enqueue(tx, "profiles", user_id, SyncOperation.UPDATE,
                         {"id": user_id, "full_name": metadata.name or "",
                          "metadata": metadata.model_dump(mode="json", by_alias=True, exclude_none=True)})
    except SQLAlchemyError:
        logger.exception("Update profile error for %s", user_id)
        return False

    session = store.get()
    if session and session.user_id == user_id:
        store.set(session.model_copy(update={"profile": metadata}))
    return True


def get_all_users(db: Database) -> List[UserOut]:
    rows = db.query_all(
        "SELECT id, email, full_name, role, metadata, created_at FROM profiles ORDER BY created_at DESC"
    )
    return [
        UserOut(
            id=row["id"],
            email=row["email"],
            full_name=row["full_name"],
            role=Role(row["role"] or Role.TEACHER.value),
            metadata=parse_metadata(row["metadata"]),
            created_at=row["created_at"],
        )
        for row in rows
    ]


def is_admin(db: Database, user_id: str) -> bool:
    user = db.query_one("SELECT role FROM profiles WHERE id = :id", {"id": user_id})
    return bool(user) and user["role"] == Role.ADMIN.value
