import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.core.config import DEFAULT_MAX_GROUP_SIZE, DEFAULT_MIN_GROUP_SIZE
from app.db.base_class import Base


class GroupingMethod(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    STUDENT_CHOICE = "student_choice"


class Assignment(Base):
    """A collaborative assignment scoped to one class section."""

    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(
        Integer, ForeignKey("class_sections.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # self-service window; NULL on either side means open-ended
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    grouping_method = Column(String(20), nullable=False, default=GroupingMethod.MANUAL.value)
    min_group_size = Column(Integer, nullable=False, default=DEFAULT_MIN_GROUP_SIZE)
    max_group_size = Column(Integer, nullable=False, default=DEFAULT_MAX_GROUP_SIZE)

    student_choice_enabled = Column(Boolean, nullable=False, default=False)
    choice_min_group_size = Column(Integer, nullable=True)
    choice_max_group_size = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    section = relationship("ClassSection", back_populates="assignments")

    groups = relationship(
        "Group",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="Group.id",
    )

    @property
    def effective_min_size(self) -> int:
        if self.choice_min_group_size is not None:
            return self.choice_min_group_size
        return self.min_group_size

    @property
    def effective_max_size(self) -> int:
        if self.choice_max_group_size is not None:
            return self.choice_max_group_size
        return self.max_group_size
