from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.core.config import DEFAULT_MAX_GROUP_SIZE, DEFAULT_MIN_GROUP_SIZE
from app.models.assignment import GroupingMethod


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    grouping_method: GroupingMethod = GroupingMethod.MANUAL
    min_group_size: int = Field(default=DEFAULT_MIN_GROUP_SIZE, ge=1)
    max_group_size: int = Field(default=DEFAULT_MAX_GROUP_SIZE, ge=1)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_group_size > self.max_group_size:
            raise ValueError("min_group_size must not exceed max_group_size")
        if self.starts_at and self.ends_at and self.starts_at > self.ends_at:
            raise ValueError("starts_at must be before ends_at")
        return self


class AssignmentRead(BaseModel):
    id: int
    section_id: int
    title: str
    description: Optional[str]
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    grouping_method: str
    min_group_size: int
    max_group_size: int
    student_choice_enabled: bool
    choice_min_group_size: Optional[int]
    choice_max_group_size: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True
