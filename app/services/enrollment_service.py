"""Enrollment of students into capacity-bounded class sections.

This module provides the EnrollmentManager class for:
- Enrolling and unenrolling students
- Clearing a section's roster
- Capacity edits and section deletion
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import ONE_SECTION_PER_COURSE
from app.core.errors import (
    ALREADY_ENROLLED,
    ALREADY_IN_COURSE,
    CAPACITY_BELOW_ENROLLMENT,
    NO_OP,
    NOT_OWNER,
    SECTION_FULL,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from app.db.session import transaction
from app.models.assignment import Assignment
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.group import GroupMembership
from app.models.section import ClassSection
from app.models.user import User
from app.services import ledger, roster

logger = logging.getLogger(__name__)


def ensure_section_staff(section: ClassSection, actor: User | None) -> None:
    """Admins manage every section; instructors only the sections they own."""
    if actor is None or actor.role == "admin":
        return
    if actor.role == "instructor" and section.owner_id == actor.id:
        return
    raise ForbiddenError("Only an admin or the section instructor can do this", NOT_OWNER)


class EnrollmentManager:
    """Admits students to sections and removes them again.

    Every check-then-write runs inside one transaction that starts by
    locking the section row, so the capacity check and the insert can't be
    interleaved with another enrollment into the same section.

    Attributes:
        db: Request-scoped database session.
        one_section_per_course: Refuse a student already active in another
            section of the same course.
    """

    def __init__(self, db: Session, one_section_per_course: bool = ONE_SECTION_PER_COURSE):
        self.db = db
        self.one_section_per_course = one_section_per_course

    def get_section(self, section_id: int) -> ClassSection:
        section = self.db.query(ClassSection).filter(ClassSection.id == section_id).first()
        if not section:
            raise NotFoundError("Section not found")
        return section

    def enroll(self, section_id: int, student_id: int, actor: User | None = None) -> Enrollment:
        """Enroll a student in a section.

        Args:
            section_id: Target section.
            student_id: User id of the student.
            actor: Caller, checked against the section's staff when given.

        Returns:
            The new active Enrollment.

        Raises:
            NotFoundError: Section or student missing.
            ForbiddenError: Actor may not manage the section.
            ConflictError: ALREADY_ENROLLED, ALREADY_IN_COURSE or SECTION_FULL.
        """
        try:
            with transaction(self.db):
                section = ledger.lock_section(self.db, section_id)
                ensure_section_staff(section, actor)

                student = roster.get_student(self.db, student_id)
                if not student:
                    raise NotFoundError("Student not found")

                existing = (
                    self.db.query(Enrollment)
                    .filter(
                        Enrollment.section_id == section_id,
                        Enrollment.student_id == student_id,
                    )
                    .first()
                )
                if existing:
                    raise ConflictError(
                        "Student is already enrolled in this section", ALREADY_ENROLLED
                    )

                if self.one_section_per_course:
                    self._ensure_not_in_sibling_section(section, student_id)

                if not ledger.has_free_seat(self.db, section):
                    raise ConflictError("Section is full", SECTION_FULL)

                enrollment = Enrollment(
                    section_id=section_id,
                    student_id=student_id,
                    status=EnrollmentStatus.ACTIVE.value,
                )
                self.db.add(enrollment)
                self.db.flush()
        except IntegrityError:
            # unique (section, student) caught a duplicate the checks above missed
            raise ConflictError("Student is already enrolled in this section", ALREADY_ENROLLED)

        self.db.refresh(enrollment)
        logger.info("Enrolled student=%s section=%s", student_id, section_id)
        return enrollment

    def _ensure_not_in_sibling_section(self, section: ClassSection, student_id: int) -> None:
        other = (
            self.db.query(ClassSection)
            .join(Enrollment, Enrollment.section_id == ClassSection.id)
            .filter(
                ClassSection.course_id == section.course_id,
                ClassSection.id != section.id,
                Enrollment.student_id == student_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .first()
        )
        if other:
            raise ConflictError(
                f'Student is already enrolled in section "{other.name}" of this course',
                ALREADY_IN_COURSE,
            )

    def unenroll(self, section_id: int, enrollment_id: int, actor: User | None = None) -> int:
        """Remove one enrollment; returns its id.

        Group memberships the student holds in this section's assignments
        are kept.
        """
        with transaction(self.db):
            section = ledger.lock_section(self.db, section_id)
            ensure_section_staff(section, actor)

            enrollment = (
                self.db.query(Enrollment)
                .filter(Enrollment.id == enrollment_id, Enrollment.section_id == section_id)
                .first()
            )
            if not enrollment:
                raise NotFoundError("Enrollment not found in this section")

            student_id = enrollment.student_id
            kept = self._memberships_in_section(section_id, student_id)
            self.db.delete(enrollment)

        if kept:
            logger.warning(
                "Unenrolled student=%s from section=%s; %s group membership(s) kept",
                student_id,
                section_id,
                kept,
            )
        logger.info("Unenrolled enrollment=%s section=%s", enrollment_id, section_id)
        return enrollment_id

    def _memberships_in_section(self, section_id: int, student_id: int) -> int:
        return (
            self.db.query(GroupMembership)
            .join(Assignment, Assignment.id == GroupMembership.assignment_id)
            .filter(Assignment.section_id == section_id, GroupMembership.student_id == student_id)
            .count()
        )

    def unenroll_all(self, section_id: int, actor: User | None = None) -> int:
        """Delete every enrollment of the section; returns how many were removed."""
        with transaction(self.db):
            section = ledger.lock_section(self.db, section_id)
            ensure_section_staff(section, actor)

            if ledger.count_active_enrollments(self.db, section_id) == 0:
                raise ConflictError("Section has no active enrollments", NO_OP)

            removed = (
                self.db.query(Enrollment)
                .filter(Enrollment.section_id == section_id)
                .delete(synchronize_session="fetch")
            )

        logger.info("Unenrolled all (%s) from section=%s", removed, section_id)
        return removed

    def update_capacity(
        self, section_id: int, capacity: int | None, actor: User | None = None
    ) -> ClassSection:
        if capacity is not None and capacity < 1:
            raise InvalidArgumentError("capacity must be a positive integer")

        with transaction(self.db):
            section = ledger.lock_section(self.db, section_id)
            ensure_section_staff(section, actor)

            if capacity is not None:
                current = ledger.count_active_enrollments(self.db, section_id)
                if current > capacity:
                    raise ConflictError(
                        f"Section already has {current} active enrollments",
                        CAPACITY_BELOW_ENROLLMENT,
                    )
            section.capacity = capacity

        self.db.refresh(section)
        logger.info("Section=%s capacity set to %s", section_id, capacity)
        return section

    def delete_section(self, section_id: int) -> int:
        """Delete a section with its enrollments, assignments, groups and memberships."""
        with transaction(self.db):
            section = ledger.lock_section(self.db, section_id)
            self.db.delete(section)

        logger.info("Deleted section=%s", section_id)
        return section_id

    def list_students(self, section_id: int, actor: User | None = None) -> list[Enrollment]:
        section = self.get_section(section_id)
        ensure_section_staff(section, actor)
        return [enrollment for enrollment, _student in roster.section_roster(self.db, section_id)]

    def list_for_student(self, student_id: int) -> list[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(Enrollment.student_id == student_id)
            .order_by(Enrollment.enrolled_at.asc(), Enrollment.id.asc())
            .all()
        )
