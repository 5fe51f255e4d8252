from fastapi import APIRouter, Depends, status

from app.core.deps import get_formation_engine
from app.core.permissions import require_instructor
from app.models.assignment import Assignment, GroupingMethod
from app.models.group import Group
from app.models.user import User
from app.schemas.assignment import AssignmentRead
from app.schemas.group import (
    AutomaticGroupCreate,
    GroupCreateRequest,
    GroupMemberAdd,
    GroupOut,
    ManualGroupCreate,
    MembershipOut,
    StudentChoiceOut,
    StudentChoiceSettings,
)
from app.schemas.user import StudentBrief
from app.services.grouping import GroupFormationEngine

router = APIRouter()


def _size_cap(assignment: Assignment) -> int:
    if assignment.grouping_method == GroupingMethod.STUDENT_CHOICE.value:
        return assignment.effective_max_size
    return assignment.max_group_size


def _group_out(group: Group) -> GroupOut:
    return GroupOut.from_group(group, max_size=_size_cap(group.assignment))


@router.get("/assignments/{assignment_id}/groups", response_model=list[GroupOut])
def list_groups(
    assignment_id: int,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    return [_group_out(g) for g in engine.list_groups(assignment_id, instructor)]


@router.get(
    "/assignments/{assignment_id}/students/ungrouped",
    response_model=list[StudentBrief],
)
def list_ungrouped_students(
    assignment_id: int,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    return engine.list_ungrouped(assignment_id, instructor)


@router.post(
    "/assignments/{assignment_id}/groups",
    response_model=list[GroupOut],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Request does not match the assignment's grouping method"},
        409: {"description": "Student already grouped, or nobody left to group"},
    },
)
def create_groups(
    assignment_id: int,
    payload: GroupCreateRequest,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    groups = engine.create_groups(assignment_id, payload, actor=instructor)
    return [_group_out(g) for g in groups]


@router.post(
    "/assignments/{assignment_id}/groups/manual",
    response_model=GroupOut,
    status_code=status.HTTP_201_CREATED,
)
def create_manual_group(
    assignment_id: int,
    payload: ManualGroupCreate,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    group = engine.create_manual_group(
        assignment_id, payload.name, payload.member_ids, payload.leader_id, actor=instructor
    )
    return _group_out(group)


@router.post(
    "/assignments/{assignment_id}/groups/automatic",
    response_model=list[GroupOut],
    status_code=status.HTTP_201_CREATED,
)
def create_automatic_groups(
    assignment_id: int,
    payload: AutomaticGroupCreate,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    groups = engine.create_automatic_groups(assignment_id, payload.group_size, actor=instructor)
    return [_group_out(g) for g in groups]


@router.post("/assignments/{assignment_id}/student-choice", response_model=StudentChoiceOut)
def enable_student_choice(
    assignment_id: int,
    payload: StudentChoiceSettings,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    created = engine.enable_student_choice(
        assignment_id,
        payload.min_size,
        payload.max_size,
        payload.number_of_groups,
        actor=instructor,
    )
    return {
        "assignment_id": assignment_id,
        "student_choice_enabled": True,
        "min_size": payload.min_size,
        "max_size": payload.max_size,
        "created_groups": [GroupOut.from_group(g, max_size=payload.max_size) for g in created],
    }


@router.delete("/assignments/{assignment_id}/student-choice", response_model=AssignmentRead)
def disable_student_choice(
    assignment_id: int,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    return engine.disable_student_choice(assignment_id, actor=instructor)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: int,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    engine.delete_group(group_id, actor=instructor)


@router.post(
    "/groups/{group_id}/members",
    response_model=MembershipOut,
    status_code=status.HTTP_201_CREATED,
)
def add_group_member(
    group_id: int,
    payload: GroupMemberAdd,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    return engine.add_member(group_id, payload.student_id, actor=instructor)


@router.delete(
    "/groups/{group_id}/members/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_group_member(
    group_id: int,
    student_id: int,
    engine: GroupFormationEngine = Depends(get_formation_engine),
    instructor: User = Depends(require_instructor),
):
    engine.remove_member(group_id, student_id, actor=instructor)
