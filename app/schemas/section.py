from datetime import datetime

from pydantic import BaseModel, Field


class SectionCapacityUpdate(BaseModel):
    # null removes the limit
    capacity: int | None = Field(default=None)


class SectionRead(BaseModel):
    id: int
    course_id: int
    instructor_id: int | None
    name: str
    code: str | None
    capacity: int | None
    room: str | None = None
    schedule: str | None = None
    updated_at: datetime

    class Config:
        from_attributes = True


class SectionDeleted(BaseModel):
    deleted_section_id: int
