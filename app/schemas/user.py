from pydantic import BaseModel, EmailStr


class UserRead(BaseModel):
    id: int
    email: EmailStr
    full_name: str | None = None
    student_number: str | None = None
    role: str

    class Config:
        from_attributes = True


class StudentBrief(BaseModel):
    """A student as listed in rosters and group pickers."""

    id: int
    full_name: str | None = None
    email: str
    student_number: str | None = None

    class Config:
        from_attributes = True
