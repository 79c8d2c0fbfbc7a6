import pytest
from pydantic import ValidationError

import grading
import students
import sync
from conftest import count
from models import GradeIn, StudentIn


@pytest.fixture
def student_id(db, teacher_id):
    return students.add_student(db, StudentIn(teacher_id=teacher_id, full_name="Amine", grade="1", group_name="A")).id


def make_grade(student_id, teacher_id, **scores):
    return GradeIn(student_id=student_id, teacher_id=teacher_id, subject="MATH", term="1", **scores)


@pytest.mark.parametrize("scores, expected", [
    ({"evaluation1": 10, "evaluation2": 12, "evaluation3": 14, "exam": 16}, 13.6),
    ({"evaluation1": 12, "exam": 14}, 13.33),
    ({"evaluation1": 10, "evaluation2": 15}, 12.5),
    ({"exam": 14}, 14.0),
    ({}, None),
])
def test_compute_average(scores, expected):
    assert grading.compute_average(make_grade("s", "t", **scores)) == expected


def test_scores_are_bounded():
    with pytest.raises(ValidationError):
        make_grade("s", "t", exam=21)
    with pytest.raises(ValidationError):
        make_grade("s", "t", evaluation1=-1)


def test_second_save_updates_the_same_row(db, teacher_id, student_id):
    first = grading.save_grade(db, make_grade(student_id, teacher_id, evaluation1=10))
    second = grading.save_grade(db, make_grade(student_id, teacher_id, evaluation1=15, exam=17))

    assert first.success and second.success
    assert first.id == second.id
    assert count(db, "grades") == 1
    (row,) = grading.get_grades(db, teacher_id, "MATH", "1")
    assert (row["evaluation1"], row["exam"], row["average"]) == (15, 17, 16.33)


def test_other_term_is_a_new_row(db, teacher_id, student_id):
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=10))
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=10).model_copy(update={"term": "2"}))
    assert count(db, "grades") == 2


def test_given_average_is_kept(db, teacher_id, student_id):
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=10, average=11.5))
    (row,) = grading.get_grades(db, teacher_id, "MATH", "1")
    assert row["average"] == 11.5


def test_grades_carry_student_name_and_filter_by_class(db, teacher_id, student_id):
    other = students.add_student(db, StudentIn(teacher_id=teacher_id, full_name="Zineb", grade="2")).id
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=12))
    grading.save_grade(db, make_grade(other, teacher_id, exam=14))

    assert [r["full_name"] for r in grading.get_grades(db, teacher_id, "MATH", "1")] == ["Amine", "Zineb"]
    assert [r["full_name"] for r in grading.get_grades(db, teacher_id, "MATH", "1", grade="2")] == ["Zineb"]
    assert [r["full_name"] for r in grading.get_grades(db, teacher_id, "MATH", "1", group="A")] == ["Amine"]
    assert grading.get_grades(db, teacher_id, "PHYSICS", "1") == []


def test_grade_for_unknown_student_fails(db, teacher_id):
    result = grading.save_grade(db, make_grade("missing", teacher_id, exam=12))
    assert result.success is False
    assert result.error
    assert count(db, "grades") == 0


def test_grade_changes_are_queued(db, teacher_id, student_id):
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=12))
    grading.save_grade(db, make_grade(student_id, teacher_id, exam=13))

    grade_items = [i for i in sync.get_pending(db) if i.table_name == "grades"]
    assert [i.operation for i in grade_items] == ["INSERT", "UPDATE"]
