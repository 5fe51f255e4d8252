"""Request-scoped dependencies: the DB session and the services built on it."""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.enrollment_service import EnrollmentManager
from app.services.grouping import GroupFormationEngine
from app.services.membership import MembershipGate


# every request that needs DB will get a fresh session, and it will always close.
# closing rolls back whatever the request left uncommitted.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_enrollment_manager(db: Session = Depends(get_db)) -> EnrollmentManager:
    return EnrollmentManager(db)


def get_formation_engine(db: Session = Depends(get_db)) -> GroupFormationEngine:
    return GroupFormationEngine(db)


def get_membership_gate(db: Session = Depends(get_db)) -> MembershipGate:
    return MembershipGate(db)
