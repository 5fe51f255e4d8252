"""
Capacity and uniqueness checks shared by the enrollment and grouping services.

Counts are always aggregated from the join rows inside the caller's
transaction; nothing keeps a running counter. Callers take the row lock
first (lock_section / lock_assignment) and only then count, so two
concurrent requests can't both see the last free seat.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.assignment import Assignment
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.group import Group, GroupMembership
from app.models.section import ClassSection


def lock_section(db: Session, section_id: int) -> ClassSection:
    section = (
        db.query(ClassSection)
        .filter(ClassSection.id == section_id)
        .with_for_update()
        .first()
    )
    if not section:
        raise NotFoundError("Section not found")
    return section


def lock_assignment(db: Session, assignment_id: int) -> Assignment:
    # every group mutation for an assignment goes through this row
    assignment = (
        db.query(Assignment)
        .filter(Assignment.id == assignment_id)
        .with_for_update()
        .first()
    )
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def get_group(db: Session, group_id: int) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise NotFoundError("Group not found")
    return group


def lock_group(db: Session, group_id: int) -> tuple[Group, Assignment]:
    """Lock the group's assignment, then read the group again under that lock.

    A group deleted between the first read and the lock is reported as
    missing rather than surfacing later as a foreign key failure.
    """
    group = get_group(db, group_id)
    assignment = lock_assignment(db, group.assignment_id)
    group = (
        db.query(Group)
        .filter(Group.id == group_id)
        .populate_existing()
        .first()
    )
    if not group:
        raise NotFoundError("Group not found")
    return group, assignment


def count_active_enrollments(db: Session, section_id: int) -> int:
    return (
        db.query(func.count(Enrollment.id))
        .filter(
            Enrollment.section_id == section_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
        )
        .scalar()
    ) or 0


def has_free_seat(db: Session, section: ClassSection) -> bool:
    if section.capacity is None:
        return True
    return count_active_enrollments(db, section.id) < section.capacity


def count_group_members(db: Session, group_id: int) -> int:
    return (
        db.query(func.count(GroupMembership.id))
        .filter(GroupMembership.group_id == group_id)
        .scalar()
    ) or 0


def find_membership(db: Session, assignment_id: int, student_id: int) -> GroupMembership | None:
    return (
        db.query(GroupMembership)
        .filter(
            GroupMembership.assignment_id == assignment_id,
            GroupMembership.student_id == student_id,
        )
        .first()
    )


def grouped_student_ids(db: Session, assignment_id: int, student_ids: list[int]) -> set[int]:
    """The subset of `student_ids` that already hold a membership for the assignment."""
    if not student_ids:
        return set()
    rows = (
        db.query(GroupMembership.student_id)
        .filter(
            GroupMembership.assignment_id == assignment_id,
            GroupMembership.student_id.in_(student_ids),
        )
        .all()
    )
    return {r.student_id for r in rows}

