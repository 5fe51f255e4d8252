from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.current_user import get_current_user
from app.core.deps import get_db
from app.core.permissions import require_instructor
from app.db.session import transaction
from app.models.assignment import Assignment
from app.models.section import ClassSection
from app.models.user import User
from app.schemas.assignment import AssignmentCreate, AssignmentRead
from app.services import roster

router = APIRouter()


def _ensure_section_exists(db: Session, section_id: int) -> ClassSection:
    section = db.query(ClassSection).filter(ClassSection.id == section_id).first()
    if not section:
        raise HTTPException(status_code=404, detail="Section not found")
    return section


def _ensure_can_view_section(db: Session, section: ClassSection, user: User) -> None:
    # Admins and the owning instructor can view
    if user.role == "admin" or section.owner_id == user.id:
        return

    # Enrolled student can view
    if not roster.is_active_member(db, section.id, user.id):
        raise HTTPException(status_code=403, detail="Not enrolled in this section")


@router.get("/sections/{section_id}/assignments", response_model=list[AssignmentRead])
def list_assignments(
    section_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    section = _ensure_section_exists(db, section_id)
    _ensure_can_view_section(db, section, current_user)

    return (
        db.query(Assignment)
        .filter(Assignment.section_id == section_id)
        .order_by(Assignment.id.asc())
        .all()
    )


@router.post(
    "/sections/{section_id}/assignments",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_assignment(
    section_id: int,
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    instructor: User = Depends(require_instructor),
):
    section = _ensure_section_exists(db, section_id)

    if section.owner_id != instructor.id:
        raise HTTPException(status_code=403, detail="Only the section instructor can create assignments")

    a = Assignment(
        section_id=section_id,
        title=payload.title,
        description=payload.description,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        grouping_method=payload.grouping_method.value,
        min_group_size=payload.min_group_size,
        max_group_size=payload.max_group_size,
        student_choice_enabled=False,
    )
    with transaction(db):
        db.add(a)
    db.refresh(a)
    return a
