import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

import sync
from database import Database, error_message, new_id
from models import SaveResult, StudentIn, SyncOperation

logger = logging.getLogger(__name__)

STUDENT_FIELDS = [name for name in StudentIn.model_fields if name != "teacher_id"]


def _student_params(student: StudentIn) -> dict:
    return student.model_dump(mode="json", include=set(STUDENT_FIELDS))


def get_students(db: Database, teacher_id: str, grade: Optional[str] = None,
                 group: Optional[str] = None) -> List[dict]:
    sql = "SELECT * FROM students WHERE teacher_id = :teacher_id"
    params = {"teacher_id": teacher_id}

    if grade:
        sql += " AND grade = :grade"
        params["grade"] = grade
    if group:
        sql += " AND group_name = :group_name"
        params["group_name"] = group

    return db.query_all(sql + " ORDER BY full_name ASC", params)


def add_student(db: Database, student: StudentIn) -> SaveResult:
    student_id = new_id()
    try:
        with db.transaction() as tx:
            tx.run(
                """
                INSERT INTO students (id, teacher_id, full_name, registration_number, birth_date,
                                      level, grade, group_name, parent_phone, notes)
                VALUES (:id, :teacher_id, :full_name, :registration_number, :birth_date,
                        :level, :grade, :group_name, :parent_phone, :notes)
                """,
                {"id": student_id, "teacher_id": student.teacher_id, **_student_params(student)},
            )
            sync.enqueue(tx, "students", student_id, SyncOperation.INSERT,
                         {"id": student_id, **student.model_dump(mode="json", by_alias=True)})
    except SQLAlchemyError as e:
        logger.exception("Add student error for teacher %s", student.teacher_id)
        return SaveResult(success=False, error=error_message(e))
    return SaveResult(success=True, id=student_id)


def update_student(db: Database, student_id: str, student: StudentIn) -> SaveResult:
    try:
        with db.transaction() as tx:
            updated = tx.run(
                """
                UPDATE students SET full_name = :full_name, registration_number = :registration_number,
                    birth_date = :birth_date, level = :level, grade = :grade, group_name = :group_name,
                    parent_phone = :parent_phone, notes = :notes
                WHERE id = :id
                """,
                {"id": student_id, **_student_params(student)},
            )
            if not updated:
                return SaveResult(success=False, error="Student not found")
            sync.enqueue(tx, "students", student_id, SyncOperation.UPDATE,
                         {"id": student_id, **student.model_dump(mode="json", by_alias=True)})
    except SQLAlchemyError as e:
        logger.exception("Update student error for %s", student_id)
        return SaveResult(success=False, error=error_message(e))
    return SaveResult(success=True, id=student_id)


def delete_student(db: Database, student_id: str) -> SaveResult:
    # grades of the student go with it (ON DELETE CASCADE)
    try:
        with db.transaction() as tx:
            if not tx.run("DELETE FROM students WHERE id = :id", {"id": student_id}):
                return SaveResult(success=False, error="Student not found")
            sync.enqueue(tx, "students", student_id, SyncOperation.DELETE, {"id": student_id})
    except SQLAlchemyError as e:
        logger.exception("Delete student error for %s", student_id)
        return SaveResult(success=False, error=error_message(e))
    return SaveResult(success=True, id=student_id)
