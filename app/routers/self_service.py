from fastapi import APIRouter, Depends, status

from app.core.deps import get_membership_gate
from app.core.permissions import require_student
from app.models.user import User
from app.schemas.group import AvailableGroupsOut, GroupOut, MembershipOut
from app.services.membership import MembershipGate

router = APIRouter()


@router.get(
    "/assignments/{assignment_id}/groups/available",
    response_model=AvailableGroupsOut,
    responses={403: {"description": "Self-service closed or not enrolled"}},
)
def list_available_groups(
    assignment_id: int,
    gate: MembershipGate = Depends(get_membership_gate),
    me: User = Depends(require_student),
):
    available = gate.list_available_groups(assignment_id, me)
    assignment = available.assignment
    max_size = assignment.effective_max_size

    return {
        "assignment_id": assignment.id,
        "already_in_group": available.already_in_group,
        "current_group": (
            GroupOut.from_group(available.current_group, max_size=max_size)
            if available.current_group
            else None
        ),
        "groups": [GroupOut.from_group(g, max_size=max_size) for g in available.groups],
        "min_size": assignment.effective_min_size,
        "max_size": max_size,
    }


@router.get("/assignments/{assignment_id}/groups/current", response_model=GroupOut | None)
def current_group(
    assignment_id: int,
    gate: MembershipGate = Depends(get_membership_gate),
    me: User = Depends(require_student),
):
    group = gate.current_group(assignment_id, me)
    if group is None:
        return None
    return GroupOut.from_group(group, max_size=group.assignment.effective_max_size)


@router.post(
    "/groups/{group_id}/join",
    response_model=MembershipOut,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"description": "Self-service closed or not enrolled"},
        409: {"description": "Already in a group, or group full"},
    },
)
def join_group(
    group_id: int,
    gate: MembershipGate = Depends(get_membership_gate),
    me: User = Depends(require_student),
):
    return gate.join_group(group_id, me)


@router.post("/groups/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_group(
    group_id: int,
    gate: MembershipGate = Depends(get_membership_gate),
    me: User = Depends(require_student),
):
    gate.leave_group(group_id, me)
