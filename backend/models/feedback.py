"""Feedback model definitions."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base, utc_now


class FeedbackStatus(str, enum.Enum):
    PENDING = 'pending'
    REVIEWED = 'reviewed'
    ARCHIVED = 'archived'


class Feedback(Base):
    """A student's rating and comment about one teacher for one subject."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String, nullable=False)
    content = Column(String(1000), nullable=False)
    rating = Column(Integer, nullable=False)
    status = Column(
        Enum(FeedbackStatus, native_enum=False, values_callable=lambda statuses: [s.value for s in statuses]),
        default=FeedbackStatus.PENDING,
        nullable=False,
    )
    teacher_response = Column(String(500))
    is_anonymous = Column(Boolean, default=False, nullable=False)
    semester = Column(Integer, nullable=False)
    academic_year = Column(String, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    student = relationship("User", foreign_keys=[student_id], lazy="joined")
    teacher = relationship("User", foreign_keys=[teacher_id], lazy="joined")
