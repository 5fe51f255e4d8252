"""Group formation for collaborative assignments.

Three formation policies live here, each in its own method with its own
preconditions:
- manual: the instructor picks the members and the leader
- automatic: eligible students are shuffled and cut into fixed-size chunks
- student_choice: the instructor opens the assignment for self-service
  (the student half lives in app.services.membership)

`GroupFormationEngine.create_groups` dispatches a request to the policy
stored on the assignment; manual and automatic creation refuse an
assignment recorded with another policy.
"""
import logging
import math
import random
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import GROUP_NAME_PREFIX, MAX_AUTO_GROUP_SIZE
from app.core.errors import (
    ALREADY_GROUPED,
    GROUP_FULL,
    NO_ELIGIBLE_STUDENTS,
    NOT_ENROLLED,
    NOT_MANUAL,
    NOT_OWNER,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from app.db.session import transaction
from app.models.assignment import Assignment, GroupingMethod
from app.models.group import Group, GroupMembership
from app.models.user import User
from app.schemas.group import (
    AutomaticGroupCreate,
    GroupCreateRequest,
    ManualGroupCreate,
    StudentChoiceSettings,
)
from app.services import ledger, roster

logger = logging.getLogger(__name__)


def group_letters(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 27 -> AB, ..."""
    letters = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def next_group_names(existing: set[str], count: int, prefix: str = GROUP_NAME_PREFIX) -> list[str]:
    """The first `count` names in the A, B, ... sequence not already in `existing`."""
    names: list[str] = []
    index = 0
    while len(names) < count:
        name = f"{prefix} {group_letters(index)}"
        if name not in existing:
            names.append(name)
        index += 1
    return names


def chunk(items: list, size: int) -> list[list]:
    """Consecutive slices of `size`; the last one may be shorter."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class GroupFormationEngine:
    """Creates, edits and deletes the groups of an assignment.

    Every mutation locks the assignment row first, so the "not yet grouped"
    checks and the inserts that depend on them run without interference
    from joins or other formation calls on the same assignment.

    Attributes:
        db: Request-scoped database session.
        rng: Source of the shuffle used by automatic grouping.
    """

    def __init__(self, db: Session, rng: random.Random | None = None):
        self.db = db
        self.rng = rng or random.Random()
        self._policies: dict[GroupingMethod, Callable[..., list[Group]]] = {
            GroupingMethod.MANUAL: self._create_manual,
            GroupingMethod.AUTOMATIC: self._create_automatic,
            GroupingMethod.STUDENT_CHOICE: self._create_student_choice,
        }

    # -- shared checks -----------------------------------------------------

    def _owned_assignment(
        self, assignment_id: int, actor: User | None, lock: bool = True
    ) -> Assignment:
        if lock:
            assignment = ledger.lock_assignment(self.db, assignment_id)
        else:
            assignment = (
                self.db.query(Assignment).filter(Assignment.id == assignment_id).first()
            )
            if not assignment:
                raise NotFoundError("Assignment not found")
        self._ensure_owner(assignment, actor)
        return assignment

    def _owned_group(self, group_id: int, actor: User | None) -> tuple[Group, Assignment]:
        group, assignment = ledger.lock_group(self.db, group_id)
        self._ensure_owner(assignment, actor)
        return group, assignment

    def _ensure_owner(self, assignment: Assignment, actor: User | None) -> None:
        if actor is not None and assignment.section.owner_id != actor.id:
            raise ForbiddenError("Only the section instructor can manage groups", NOT_OWNER)

    def _ensure_enrolled(self, assignment: Assignment, student_ids: list[int]) -> None:
        enrolled = roster.active_student_ids(self.db, assignment.section_id, student_ids)
        missing = [sid for sid in student_ids if sid not in enrolled]
        if missing:
            raise InvalidArgumentError(
                f"Not enrolled in this section: {', '.join(str(m) for m in missing)}",
                NOT_ENROLLED,
            )

    def _ensure_ungrouped(self, assignment: Assignment, student_ids: list[int]) -> None:
        taken = ledger.grouped_student_ids(self.db, assignment.id, student_ids)
        if taken:
            raise ConflictError(
                f"Already in a group for this assignment: {', '.join(str(t) for t in sorted(taken))}",
                ALREADY_GROUPED,
            )

    def _ensure_policy(self, assignment: Assignment, method: GroupingMethod) -> None:
        policy = GroupingMethod(assignment.grouping_method)
        if policy != method:
            raise InvalidArgumentError(
                f"Assignment uses {policy.value} grouping, not {method.value}"
            )

    def _existing_names(self, assignment_id: int) -> set[str]:
        rows = self.db.query(Group.name).filter(Group.assignment_id == assignment_id).all()
        return {r.name for r in rows}

    # -- policy dispatch ---------------------------------------------------

    def create_groups(
        self, assignment_id: int, request: GroupCreateRequest, actor: User | None = None
    ) -> list[Group]:
        """Create groups with the policy recorded on the assignment.

        The request must be the variant for that policy; a mismatch is an
        InvalidArgumentError rather than a silent switch of policy.
        """
        assignment = self._owned_assignment(assignment_id, actor, lock=False)

        policy = GroupingMethod(assignment.grouping_method)
        if request.method != policy.value:
            raise InvalidArgumentError(
                f"Assignment uses {policy.value} grouping, got a {request.method} request"
            )
        return self._policies[policy](assignment_id, request, actor)

    def _create_manual(
        self, assignment_id: int, request: ManualGroupCreate, actor: User | None
    ) -> list[Group]:
        return [
            self.create_manual_group(
                assignment_id, request.name, request.member_ids, request.leader_id, actor
            )
        ]

    def _create_automatic(
        self, assignment_id: int, request: AutomaticGroupCreate, actor: User | None
    ) -> list[Group]:
        return self.create_automatic_groups(assignment_id, request.group_size, actor)

    def _create_student_choice(
        self, assignment_id: int, request: StudentChoiceSettings, actor: User | None
    ) -> list[Group]:
        return self.enable_student_choice(
            assignment_id, request.min_size, request.max_size, request.number_of_groups, actor
        )

    # -- manual ------------------------------------------------------------

    def create_manual_group(
        self,
        assignment_id: int,
        name: str,
        member_ids: list[int],
        leader_id: int | None = None,
        actor: User | None = None,
    ) -> Group:
        """Create one group with an instructor-chosen roster.

        Raises:
            NotFoundError: Assignment missing.
            ForbiddenError: Actor doesn't own the assignment's section.
            InvalidArgumentError: Assignment not set to manual grouping, blank
                name, no members, duplicate members, leader outside the roster,
                or a member not enrolled.
            ConflictError: ALREADY_GROUPED.
        """
        try:
            with transaction(self.db):
                assignment = self._owned_assignment(assignment_id, actor)
                self._ensure_policy(assignment, GroupingMethod.MANUAL)

                name = (name or "").strip()
                if not name:
                    raise InvalidArgumentError("Group name is required")
                if not member_ids:
                    raise InvalidArgumentError("A group needs at least one member")
                if len(set(member_ids)) != len(member_ids):
                    raise InvalidArgumentError("Duplicate member ids")
                if leader_id is not None and leader_id not in member_ids:
                    raise InvalidArgumentError("Leader must be one of the members")

                self._ensure_enrolled(assignment, member_ids)
                self._ensure_ungrouped(assignment, member_ids)

                group = Group(
                    assignment_id=assignment.id,
                    name=name,
                    creation_method=GroupingMethod.MANUAL.value,
                    created_by=actor.id if actor else None,
                )
                group.memberships = [
                    GroupMembership(
                        assignment_id=assignment.id,
                        student_id=student_id,
                        is_leader=student_id == leader_id,
                    )
                    for student_id in member_ids
                ]
                self.db.add(group)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("A member is already in a group for this assignment", ALREADY_GROUPED)

        self.db.refresh(group)
        logger.info(
            "Manual group=%s (%s members) for assignment=%s",
            group.id,
            len(member_ids),
            assignment_id,
        )
        return group

    # -- automatic ---------------------------------------------------------

    def create_automatic_groups(
        self, assignment_id: int, group_size: int, actor: User | None = None
    ) -> list[Group]:
        """Shuffle the ungrouped students and cut them into groups of `group_size`.

        The last group may be smaller than `group_size` (and smaller than the
        assignment's minimum); there is no rebalancing. The first student of
        each chunk becomes its leader. Either every group is created or none.
        Only for assignments set to automatic grouping.
        """
        try:
            with transaction(self.db):
                assignment = self._owned_assignment(assignment_id, actor)
                self._ensure_policy(assignment, GroupingMethod.AUTOMATIC)

                if (
                    isinstance(group_size, bool)
                    or not isinstance(group_size, int)
                    or not 1 <= group_size <= MAX_AUTO_GROUP_SIZE
                ):
                    raise InvalidArgumentError(
                        f"group_size must be an integer between 1 and {MAX_AUTO_GROUP_SIZE}"
                    )

                pool = roster.ungrouped_students(self.db, assignment.section_id, assignment.id)
                if not pool:
                    raise ConflictError(
                        "No students available for grouping", NO_ELIGIBLE_STUDENTS
                    )

                self.rng.shuffle(pool)
                chunks = chunk(pool, group_size)
                names = next_group_names(self._existing_names(assignment.id), len(chunks))

                groups = []
                for name, members in zip(names, chunks):
                    group = Group(
                        assignment_id=assignment.id,
                        name=name,
                        creation_method=GroupingMethod.AUTOMATIC.value,
                        created_by=actor.id if actor else None,
                    )
                    group.memberships = [
                        GroupMembership(
                            assignment_id=assignment.id,
                            student_id=student.id,
                            is_leader=position == 0,
                        )
                        for position, student in enumerate(members)
                    ]
                    self.db.add(group)
                    groups.append(group)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("A student was grouped concurrently; retry", ALREADY_GROUPED)

        logger.info(
            "Automatic grouping for assignment=%s: %s students into %s groups of <=%s",
            assignment_id,
            len(pool),
            len(groups),
            group_size,
        )
        return groups

    # -- student choice ----------------------------------------------------

    def enable_student_choice(
        self,
        assignment_id: int,
        min_size: int,
        max_size: int,
        number_of_groups: int | None = None,
        actor: User | None = None,
    ) -> list[Group]:
        """Open the assignment for self-service grouping.

        Re-enabling overwrites the bounds and keeps every existing group.
        Empty groups are opened for students to join: `number_of_groups` of
        them when given, otherwise enough to seat the section at `max_size`,
        but only if the assignment has no groups yet.

        Returns:
            The groups created by this call (possibly none).
        """
        with transaction(self.db):
            assignment = self._owned_assignment(assignment_id, actor)

            if min_size < 1 or max_size < min_size:
                raise InvalidArgumentError("Sizes must satisfy 1 <= min_size <= max_size")
            if number_of_groups is not None and number_of_groups < 0:
                raise InvalidArgumentError("number_of_groups must not be negative")

            assignment.grouping_method = GroupingMethod.STUDENT_CHOICE.value
            assignment.student_choice_enabled = True
            assignment.choice_min_group_size = min_size
            assignment.choice_max_group_size = max_size

            existing = self._existing_names(assignment.id)
            if number_of_groups is None:
                if existing:
                    number_of_groups = 0
                else:
                    enrolled = ledger.count_active_enrollments(self.db, assignment.section_id)
                    number_of_groups = max(1, math.ceil(enrolled / max_size))

            groups = [
                Group(
                    assignment_id=assignment.id,
                    name=name,
                    creation_method=GroupingMethod.STUDENT_CHOICE.value,
                    created_by=None,
                )
                for name in next_group_names(existing, number_of_groups)
            ]
            self.db.add_all(groups)
            self.db.flush()

        logger.info(
            "Student choice enabled for assignment=%s (size %s-%s, %s new groups)",
            assignment_id,
            min_size,
            max_size,
            len(groups),
        )
        return groups

    def disable_student_choice(self, assignment_id: int, actor: User | None = None) -> Assignment:
        with transaction(self.db):
            assignment = self._owned_assignment(assignment_id, actor)
            assignment.student_choice_enabled = False

        self.db.refresh(assignment)
        logger.info("Student choice disabled for assignment=%s", assignment_id)
        return assignment

    # -- registry maintenance ----------------------------------------------

    def list_groups(self, assignment_id: int, actor: User | None = None) -> list[Group]:
        assignment = self._owned_assignment(assignment_id, actor, lock=False)
        return list(assignment.groups)

    def list_ungrouped(self, assignment_id: int, actor: User | None = None) -> list[User]:
        assignment = self._owned_assignment(assignment_id, actor, lock=False)
        return roster.ungrouped_students(self.db, assignment.section_id, assignment.id)

    def delete_group(self, group_id: int, actor: User | None = None) -> int:
        with transaction(self.db):
            group, _assignment = self._owned_group(group_id, actor)
            self.db.delete(group)

        logger.info("Deleted group=%s", group_id)
        return group_id

    def add_member(self, group_id: int, student_id: int, actor: User | None = None) -> GroupMembership:
        """Add a student to a manual group, up to the assignment's max group size."""
        try:
            with transaction(self.db):
                group, assignment = self._owned_group(group_id, actor)

                if group.creation_method != GroupingMethod.MANUAL.value:
                    raise InvalidArgumentError(
                        "Members can only be added to manually created groups", NOT_MANUAL
                    )
                self._ensure_enrolled(assignment, [student_id])
                self._ensure_ungrouped(assignment, [student_id])

                if ledger.count_group_members(self.db, group.id) >= assignment.max_group_size:
                    raise ConflictError(
                        f"Group already has the maximum of {assignment.max_group_size} members",
                        GROUP_FULL,
                    )

                membership = GroupMembership(
                    group_id=group.id,
                    assignment_id=assignment.id,
                    student_id=student_id,
                    is_leader=False,
                )
                self.db.add(membership)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("Student is already in a group for this assignment", ALREADY_GROUPED)

        self.db.refresh(membership)
        logger.info("Added student=%s to group=%s", student_id, group_id)
        return membership

    def remove_member(self, group_id: int, student_id: int, actor: User | None = None) -> None:
        """Remove a student from a manual group. The minimum size is not enforced."""
        with transaction(self.db):
            group, _assignment = self._owned_group(group_id, actor)

            if group.creation_method != GroupingMethod.MANUAL.value:
                raise InvalidArgumentError(
                    "Members can only be removed from manually created groups", NOT_MANUAL
                )
            membership = (
                self.db.query(GroupMembership)
                .filter(
                    GroupMembership.group_id == group_id,
                    GroupMembership.student_id == student_id,
                )
                .first()
            )
            if not membership:
                raise NotFoundError("Student is not a member of this group")
            self.db.delete(membership)

        logger.info("Removed student=%s from group=%s", student_id, group_id)
