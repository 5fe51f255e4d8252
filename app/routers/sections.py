from fastapi import APIRouter, Depends, status

from app.core.deps import get_enrollment_manager
from app.core.permissions import require_admin, require_staff
from app.models.user import User
from app.schemas.enrollment import EnrollmentCreate, EnrollmentOut, UnenrollAllOut, UnenrollOut
from app.schemas.section import SectionCapacityUpdate, SectionDeleted, SectionRead
from app.services.enrollment_service import EnrollmentManager

router = APIRouter()


@router.get("/{section_id}/students", response_model=list[EnrollmentOut])
def list_section_students(
    section_id: int,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    staff: User = Depends(require_staff),
):
    return [EnrollmentOut.from_enrollment(e) for e in manager.list_students(section_id, staff)]


@router.post(
    "/{section_id}/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Section or student not found"},
        409: {"description": "Already enrolled, or section full"},
    },
)
def enroll_student(
    section_id: int,
    payload: EnrollmentCreate,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    staff: User = Depends(require_staff),
):
    enrollment = manager.enroll(section_id, payload.student_id, actor=staff)
    return EnrollmentOut.from_enrollment(enrollment)


@router.delete("/{section_id}/enrollments/{enrollment_id}", response_model=UnenrollOut)
def unenroll_student(
    section_id: int,
    enrollment_id: int,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    staff: User = Depends(require_staff),
):
    removed = manager.unenroll(section_id, enrollment_id, actor=staff)
    return {"removed_enrollment_id": removed}


@router.delete(
    "/{section_id}/enrollments",
    response_model=UnenrollAllOut,
    responses={409: {"description": "Section has no active enrollments"}},
)
def unenroll_all(
    section_id: int,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    staff: User = Depends(require_staff),
):
    return {"removed_count": manager.unenroll_all(section_id, actor=staff)}


@router.patch("/{section_id}", response_model=SectionRead)
def update_section_capacity(
    section_id: int,
    payload: SectionCapacityUpdate,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    staff: User = Depends(require_staff),
):
    return manager.update_capacity(section_id, payload.capacity, actor=staff)


@router.delete("/{section_id}", response_model=SectionDeleted)
def delete_section(
    section_id: int,
    manager: EnrollmentManager = Depends(get_enrollment_manager),
    admin: User = Depends(require_admin),
):
    return {"deleted_section_id": manager.delete_section(section_id)}
