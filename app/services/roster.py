"""
Read-only roster queries.

The roster is derived from Enrollment rows; nothing here writes.
"""
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.group import GroupMembership
from app.models.user import User


def get_student(db: Session, student_id: int) -> User | None:
    """The user with `student_id`, provided they hold the student role."""
    return (
        db.query(User)
        .filter(User.id == student_id, User.role == "student")
        .first()
    )


def section_roster(db: Session, section_id: int) -> list[tuple[Enrollment, User]]:
    """(enrollment, student) pairs for a section, ordered by name then email."""
    return (
        db.query(Enrollment, User)
        .join(User, User.id == Enrollment.student_id)
        .filter(Enrollment.section_id == section_id)
        .order_by(User.full_name.asc(), User.email.asc())
        .all()
    )


def is_active_member(db: Session, section_id: int, student_id: int) -> bool:
    return (
        db.query(Enrollment.id)
        .filter(
            Enrollment.section_id == section_id,
            Enrollment.student_id == student_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
        )
        .first()
        is not None
    )


def active_student_ids(db: Session, section_id: int, student_ids: list[int]) -> set[int]:
    """The subset of `student_ids` actively enrolled in the section."""
    if not student_ids:
        return set()
    rows = (
        db.query(Enrollment.student_id)
        .join(User, User.id == Enrollment.student_id)
        .filter(
            Enrollment.section_id == section_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            Enrollment.student_id.in_(student_ids),
            User.role == "student",
        )
        .all()
    )
    return {r.student_id for r in rows}


def ungrouped_students(db: Session, section_id: int, assignment_id: int) -> list[User]:
    """
    Students actively enrolled in the section with no membership for the assignment.

    Ordered by user id so callers that shuffle start from a stable sequence.
    """
    grouped = select(GroupMembership.student_id).where(
        GroupMembership.assignment_id == assignment_id
    )
    return (
        db.query(User)
        .join(Enrollment, Enrollment.student_id == User.id)
        .filter(
            Enrollment.section_id == section_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            User.role == "student",
            User.id.not_in(grouped),
        )
        .order_by(User.id.asc())
        .all()
    )
