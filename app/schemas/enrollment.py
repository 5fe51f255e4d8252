from datetime import datetime

from pydantic import BaseModel

from app.models.enrollment import Enrollment


class EnrollmentCreate(BaseModel):
    student_id: int


class EnrollmentOut(BaseModel):
    id: int
    section_id: int
    student_id: int
    status: str
    enrolled_at: datetime

    # denormalized from the student for display
    student_email: str | None = None
    student_name: str | None = None
    student_number: str | None = None

    class Config:
        from_attributes = True

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "EnrollmentOut":
        student = enrollment.student
        return cls(
            id=enrollment.id,
            section_id=enrollment.section_id,
            student_id=enrollment.student_id,
            status=enrollment.status,
            enrolled_at=enrollment.enrolled_at,
            student_email=student.email if student else None,
            student_name=student.full_name if student else None,
            student_number=student.student_number if student else None,
        )


class UnenrollOut(BaseModel):
    removed_enrollment_id: int


class UnenrollAllOut(BaseModel):
    removed_count: int
