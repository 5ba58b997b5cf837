from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func
from app.db import Base

ATTEMPT_STATUSES = ("not_started", "in_progress", "submitted", "timed_out")
TERMINAL_ATTEMPT_STATUSES = ("submitted", "timed_out")

class Attempt(Base):
    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("test_sessions.id", ondelete="CASCADE"), index=True, nullable=False)
    student_id = Column(String(64), index=True, nullable=False)
    status = Column(String(16), nullable=False, default="in_progress")
    answers = Column(JSON, nullable=False, default=dict)           # {questionId: index | None}
    version = Column(Integer, nullable=False, default=0)           # check optimista de answers
    started_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    total_time_taken = Column(Integer, nullable=False, default=0)  # segundos
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_attempt_session_student"),
        Index("ix_attempts_session_status", "session_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ATTEMPT_STATUSES
