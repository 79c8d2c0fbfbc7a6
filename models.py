from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    # the desktop front end speaks camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmailModel(WireModel):
    """Base for inputs keyed by email. Emails are matched case-insensitively."""

    @field_validator("email", check_fields=False)
    @classmethod
    def email_lowercase(cls, v):
        return v.strip().lower() if v else v


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"


class SessionCategory(str, Enum):
    LESSON = "LESSON"
    BREAK = "BREAK"
    EXAM = "EXAM"
    SUPPORT = "SUPPORT"
    TRAINING = "TRAINING"
    INTEGRATION = "INTEGRATION"
    HOLIDAY = "HOLIDAY"


class Period(str, Enum):
    MORNING = "MORNING"
    EVENING = "EVENING"


class SyncOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ========== Profiles / auth ==========
class ProfileMetadata(WireModel):
    """Free-form profile details stored as JSON in profiles.metadata."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    version: int = 1
    tamkeen_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    phone: Optional[str] = None
    wilaya: Optional[str] = None
    province: Optional[str] = None
    institution: Optional[str] = None
    level: Optional[str] = None
    subject: Optional[str] = None
    grades: List[str] = Field(default_factory=list)
    academic_year: Optional[str] = None
    preferred_shift: Optional[str] = None
    teaching_language: Optional[str] = None
    teaching_subject: Optional[str] = None
    picture: Optional[str] = None
    source: Optional[str] = None


class RegisterRequest(EmailModel):
    email: str
    password: str
    full_name: str
    metadata: ProfileMetadata = Field(default_factory=ProfileMetadata)


class LoginRequest(EmailModel):
    email: str
    password: str


class ExternalUser(EmailModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class SessionData(WireModel):
    user_id: str
    email: str
    role: Role
    profile: ProfileMetadata


class LoginResult(WireModel):
    success: bool
    error: Optional[str] = None
    session: Optional[SessionData] = None


class RegisterResult(LoginResult):
    user_id: Optional[str] = None


class UserOut(WireModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: Role
    metadata: ProfileMetadata
    created_at: Optional[str] = None


# ========== Journal ==========
class LessonSessionIn(WireModel):
    id: Optional[str] = None
    subject: Optional[str] = None
    activity: Optional[str] = None
    title: Optional[str] = None
    objective: Optional[str] = None
    content: Optional[str] = None
    tools: Optional[str] = None
    notes: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    category: SessionCategory = SessionCategory.LESSON
    period: Period = Period.MORNING
    section_id: Optional[str] = None
    section_name: Optional[str] = None
    section_number: int = 0
    unity_number: int = 0
    session_number: int = 0
    holiday_name: Optional[str] = None
    break_duration: Optional[int] = None
    exam_type: Optional[str] = None
    support_type: Optional[str] = None
    training_type: Optional[str] = None
    integration_type: Optional[str] = None


class LessonSessionOut(LessonSessionIn):
    id: str


class JournalOut(WireModel):
    id: str
    teacher_id: str
    date: str
    day_name: str
    sessions: List[LessonSessionOut] = Field(default_factory=list)


class JournalSummary(WireModel):
    id: str
    journal_date: str
    session_count: int


# ========== Students / grades ==========
class StudentIn(WireModel):
    teacher_id: str
    full_name: str
    registration_number: Optional[str] = None
    birth_date: Optional[date] = None
    level: Optional[str] = None
    grade: Optional[str] = None
    group_name: Optional[str] = None
    parent_phone: Optional[str] = None
    notes: Optional[str] = None


class GradeIn(WireModel):
    student_id: str
    teacher_id: str
    subject: str
    term: str = "1"
    evaluation1: Optional[float] = Field(default=None, ge=0, le=20)
    evaluation2: Optional[float] = Field(default=None, ge=0, le=20)
    evaluation3: Optional[float] = Field(default=None, ge=0, le=20)
    exam: Optional[float] = Field(default=None, ge=0, le=20)
    average: Optional[float] = Field(default=None, ge=0, le=20)
    notes: Optional[str] = None


class SaveResult(WireModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


# ========== Sync ==========
class SyncItem(WireModel):
    id: int
    table_name: str
    record_id: str
    operation: SyncOperation
    payload: Optional[str] = None
    created_at: Optional[str] = None


class ClearRequest(WireModel):
    ids: List[int]


# ========== Admin ==========
class ImportedSession(LessonSessionIn):
    date: date


class ImportProfile(EmailModel):
    email: str
    name: Optional[str] = None
    role: Role = Role.TEACHER
    metadata: ProfileMetadata = Field(default_factory=ProfileMetadata)


class ImportPayload(WireModel):
    profile: ImportProfile
    sessions: List[ImportedSession] = Field(default_factory=list)


class ImportResult(WireModel):
    success: bool
    profile_id: Optional[str] = None
    created_profile: bool = False
    sessions_imported: int = 0
    error: Optional[str] = None


class MessageIn(WireModel):
    to_user: str
    message: str
