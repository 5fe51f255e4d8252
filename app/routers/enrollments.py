from fastapi import APIRouter, Depends

from app.core.deps import get_enrollment_manager
from app.core.permissions import require_student
from app.models.user import User
from app.schemas.enrollment import EnrollmentOut
from app.services.enrollment_service import EnrollmentManager

router = APIRouter()


@router.get("/me", response_model=list[EnrollmentOut])
def my_enrollments(
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    me: User = Depends(require_student),
):
    enrollments = manager.list_for_student(me.id)
    return [EnrollmentOut.from_enrollment(e) for e in enrollments]
