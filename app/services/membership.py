"""Student self-service: browse, join and leave groups of an assignment."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    ALREADY_GROUPED,
    CHOICE_DISABLED,
    GROUP_FULL,
    NOT_ENROLLED,
    WINDOW_CLOSED,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from app.db.session import transaction
from app.models.assignment import Assignment
from app.models.group import Group, GroupMembership
from app.models.user import User
from app.services import ledger, roster

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; treat them as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class AvailableGroups:
    """What a student sees: either their own group or every group to pick from."""

    assignment: Assignment
    current_group: Group | None = None
    groups: list[Group] = field(default_factory=list)

    @property
    def already_in_group(self) -> bool:
        return self.current_group is not None


class MembershipGate:
    """Join/leave for students, only while the instructor keeps self-service open.

    Every call checks, in order: assignment exists, self-service enabled,
    now inside the assignment's window, caller actively enrolled in the
    section.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def _ensure_open(self, assignment: Assignment, student: User) -> None:
        if not assignment.student_choice_enabled:
            raise ForbiddenError("Self-service grouping is not enabled", CHOICE_DISABLED)

        now = _as_utc(self.clock())
        starts_at = _as_utc(assignment.starts_at)
        ends_at = _as_utc(assignment.ends_at)
        if (starts_at is not None and now < starts_at) or (ends_at is not None and now > ends_at):
            raise ForbiddenError("Group selection window is closed", WINDOW_CLOSED)

        if not roster.is_active_member(self.db, assignment.section_id, student.id):
            raise ForbiddenError("Not enrolled in this section", NOT_ENROLLED)

    def _get_assignment(self, assignment_id: int) -> Assignment:
        assignment = self.db.query(Assignment).filter(Assignment.id == assignment_id).first()
        if not assignment:
            raise NotFoundError("Assignment not found")
        return assignment

    def list_available_groups(self, assignment_id: int, student: User) -> AvailableGroups:
        assignment = self._get_assignment(assignment_id)
        self._ensure_open(assignment, student)

        membership = ledger.find_membership(self.db, assignment.id, student.id)
        if membership:
            return AvailableGroups(assignment=assignment, current_group=membership.group)

        # full groups stay in the list; the response flags them
        return AvailableGroups(assignment=assignment, groups=list(assignment.groups))

    def current_group(self, assignment_id: int, student: User) -> Group | None:
        assignment = self._get_assignment(assignment_id)
        self._ensure_open(assignment, student)
        membership = ledger.find_membership(self.db, assignment.id, student.id)
        return membership.group if membership else None

    def join_group(self, group_id: int, student: User) -> GroupMembership:
        """Join a group as a regular (non-leader) member.

        Raises:
            NotFoundError: Group missing.
            ForbiddenError: CHOICE_DISABLED, WINDOW_CLOSED or NOT_ENROLLED.
            ConflictError: ALREADY_GROUPED or GROUP_FULL.
        """
        try:
            with transaction(self.db):
                group, assignment = ledger.lock_group(self.db, group_id)
                self._ensure_open(assignment, student)

                if ledger.find_membership(self.db, assignment.id, student.id):
                    raise ConflictError(
                        "Already in a group for this assignment", ALREADY_GROUPED
                    )

                max_size = assignment.effective_max_size
                if ledger.count_group_members(self.db, group.id) >= max_size:
                    raise ConflictError(f"Group is full ({max_size} members)", GROUP_FULL)

                membership = GroupMembership(
                    group_id=group.id,
                    assignment_id=assignment.id,
                    student_id=student.id,
                    is_leader=False,
                )
                self.db.add(membership)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("Already in a group for this assignment", ALREADY_GROUPED)

        self.db.refresh(membership)
        logger.info("Student=%s joined group=%s", student.id, group_id)
        return membership

    def leave_group(self, group_id: int, student: User) -> None:
        """Leave a group. The group may drop below the minimum size."""
        with transaction(self.db):
            _group, assignment = ledger.lock_group(self.db, group_id)
            self._ensure_open(assignment, student)

            membership = (
                self.db.query(GroupMembership)
                .filter(
                    GroupMembership.group_id == group_id,
                    GroupMembership.student_id == student.id,
                )
                .first()
            )
            if not membership:
                raise NotFoundError("Not a member of this group")
            self.db.delete(membership)

        logger.info("Student=%s left group=%s", student.id, group_id)
