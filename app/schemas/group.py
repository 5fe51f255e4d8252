from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.group import Group, GroupMembership


class GroupMemberOut(BaseModel):
    student_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    student_number: Optional[str] = None
    is_leader: bool
    joined_at: datetime

    @classmethod
    def from_membership(cls, membership: GroupMembership) -> "GroupMemberOut":
        student = membership.student
        return cls(
            student_id=membership.student_id,
            full_name=student.full_name if student else None,
            email=student.email if student else None,
            student_number=student.student_number if student else None,
            is_leader=membership.is_leader,
            joined_at=membership.joined_at,
        )


class GroupOut(BaseModel):
    id: int
    assignment_id: int
    name: str
    creation_method: str
    created_by: Optional[int] = None
    created_at: datetime
    member_count: int
    max_size: Optional[int] = None
    is_full: bool = False
    members: list[GroupMemberOut] = []

    @classmethod
    def from_group(cls, group: Group, max_size: int | None = None) -> "GroupOut":
        members = [GroupMemberOut.from_membership(m) for m in group.memberships]
        return cls(
            id=group.id,
            assignment_id=group.assignment_id,
            name=group.name,
            creation_method=group.creation_method,
            created_by=group.created_by,
            created_at=group.created_at,
            member_count=len(members),
            max_size=max_size,
            is_full=max_size is not None and len(members) >= max_size,
            members=members,
        )


class MembershipOut(BaseModel):
    id: int
    group_id: int
    assignment_id: int
    student_id: int
    is_leader: bool
    joined_at: datetime

    class Config:
        from_attributes = True


# --- creation requests, one variant per grouping policy ---


class ManualGroupCreate(BaseModel):
    method: Literal["manual"] = "manual"
    name: str
    member_ids: list[int]
    leader_id: Optional[int] = None


class AutomaticGroupCreate(BaseModel):
    method: Literal["automatic"] = "automatic"
    group_size: int


class StudentChoiceSettings(BaseModel):
    method: Literal["student_choice"] = "student_choice"
    min_size: int
    max_size: int
    # empty groups to open; omitted = enough for the section, first time only
    number_of_groups: Optional[int] = None


GroupCreateRequest = Annotated[
    Union[ManualGroupCreate, AutomaticGroupCreate, StudentChoiceSettings],
    Field(discriminator="method"),
]


class GroupMemberAdd(BaseModel):
    student_id: int


# --- responses ---


class StudentChoiceOut(BaseModel):
    assignment_id: int
    student_choice_enabled: bool
    min_size: Optional[int]
    max_size: Optional[int]
    created_groups: list[GroupOut]


class AvailableGroupsOut(BaseModel):
    assignment_id: int
    already_in_group: bool
    current_group: Optional[GroupOut] = None
    groups: list[GroupOut] = []
    min_size: int
    max_size: int
