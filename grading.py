import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

import sync
from database import Database, error_message, new_id
from models import GradeIn, SaveResult, SyncOperation

logger = logging.getLogger(__name__)

# the term exam weighs as much as two evaluations
EXAM_WEIGHT = 2


def compute_average(grade: GradeIn) -> Optional[float]:
    evaluations = [v for v in (grade.evaluation1, grade.evaluation2, grade.evaluation3) if v is not None]
    total = sum(evaluations)
    weight = len(evaluations)
    if grade.exam is not None:
        total += EXAM_WEIGHT * grade.exam
        weight += EXAM_WEIGHT
    if not weight:
        return None
    return round(total / weight, 2)


def get_grades(db: Database, teacher_id: str, subject: str, term: str, grade: Optional[str] = None,
               group: Optional[str] = None) -> List[dict]:
    sql = """
        SELECT g.*, s.full_name, s.registration_number
        FROM grades g
        JOIN students s ON g.student_id = s.id
        WHERE g.teacher_id = :teacher_id AND g.subject = :subject AND g.term = :term
    """
    params = {"teacher_id": teacher_id, "subject": subject, "term": term}

    if grade:
        sql += " AND s.grade = :grade"
        params["grade"] = grade
    if group:
        sql += " AND s.group_name = :group_name"
        params["group_name"] = group

    return db.query_all(sql + " ORDER BY s.full_name ASC", params)


def save_grade(db: Database, grade: GradeIn) -> SaveResult:
    """Insert or update the single grade row of (student, subject, term)."""
    values = {
        "evaluation1": grade.evaluation1,
        "evaluation2": grade.evaluation2,
        "evaluation3": grade.evaluation3,
        "exam": grade.exam,
        "average": grade.average if grade.average is not None else compute_average(grade),
        "notes": grade.notes,
    }
    payload = {**grade.model_dump(mode="json", by_alias=True), "average": values["average"]}

    try:
        with db.transaction() as tx:
            existing = tx.query_one(
                "SELECT id FROM grades WHERE student_id = :student_id AND subject = :subject AND term = :term",
                {"student_id": grade.student_id, "subject": grade.subject, "term": grade.term},
            )
            if existing:
                grade_id = existing["id"]
                tx.run(
                    """
                    UPDATE grades SET evaluation1 = :evaluation1, evaluation2 = :evaluation2,
                        evaluation3 = :evaluation3, exam = :exam, average = :average, notes = :notes,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = :id
                    """,
                    {"id": grade_id, **values},
                )
                sync.enqueue(tx, "grades", grade_id, SyncOperation.UPDATE, {"id": grade_id, **payload})
            else:
                grade_id = new_id()
                tx.run(
                    """
                    INSERT INTO grades (id, student_id, teacher_id, subject, term, evaluation1, evaluation2,
                                        evaluation3, exam, average, notes)
                    VALUES (:id, :student_id, :teacher_id, :subject, :term, :evaluation1, :evaluation2,
                            :evaluation3, :exam, :average, :notes)
                    """,
                    {
                        "id": grade_id,
                        "student_id": grade.student_id,
                        "teacher_id": grade.teacher_id,
                        "subject": grade.subject,
                        "term": grade.term,
                        **values,
                    },
                )
                sync.enqueue(tx, "grades", grade_id, SyncOperation.INSERT, {"id": grade_id, **payload})
    except SQLAlchemyError as e:
        logger.exception("Save grade error for student %s", grade.student_id)
        return SaveResult(success=False, error=error_message(e))
    return SaveResult(success=True, id=grade_id)
