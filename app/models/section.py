from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base


class ClassSection(Base):
    __tablename__ = "class_sections"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(
        Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    instructor_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    name = Column(String(100), nullable=False)  # e.g. "Class A"
    code = Column(String(20), nullable=True)
    # NULL means unbounded
    capacity = Column(Integer, nullable=True)
    room = Column(String(50), nullable=True)
    schedule = Column(String(100), nullable=True)  # e.g. "Mon 08:00-10:00"

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity > 0", name="ck_section_capacity_positive"),
    )

    course = relationship("Course", back_populates="sections")
    instructor = relationship("User", foreign_keys=[instructor_id])

    enrollments = relationship(
        "Enrollment", back_populates="section", cascade="all, delete-orphan"
    )

    assignments = relationship(
        "Assignment", back_populates="section", cascade="all, delete-orphan"
    )

    @property
    def owner_id(self) -> int | None:
        """The instructor who owns the section, falling back to the course instructor."""
        if self.instructor_id is not None:
            return self.instructor_id
        return self.course.instructor_id if self.course else None
