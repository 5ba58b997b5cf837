from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, JSON, Float, Boolean, Text
from sqlalchemy.sql import func
from app.db import Base

class ScoreCard(Base):
    __tablename__ = "score_cards"

    id = Column(Integer, primary_key=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id", ondelete="CASCADE"), unique=True, nullable=False)
    session_id = Column(Integer, ForeignKey("test_sessions.id", ondelete="CASCADE"), index=True, nullable=False)
    student_id = Column(String(64), index=True, nullable=False)
    available = Column(Boolean, nullable=False, default=True)      # False si el snapshot estaba roto
    error = Column(Text, nullable=True)
    total_questions = Column(Integer, nullable=False, default=0)
    attempted_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    wrong_answers = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    pending_review = Column(Integer, nullable=False, default=0)    # subjetivas respondidas (sin corrección)
    score = Column(Integer, nullable=False, default=0)             # 0..100 sobre total
    accuracy = Column(Float, nullable=False, default=0.0)          # 0..100 sobre respondidas
    total_time_taken = Column(Integer, nullable=False, default=0)
    avg_time_per_question = Column(Float, nullable=False, default=0.0)
    question_results = Column(JSON, nullable=False, default=list)  # [{questionId, selectedIndex, outcome}]
    breakdown = Column(JSON, nullable=False, default=dict)         # {"chapter": [...], "difficulty": [...], "type": [...]}
    mistakes = Column(JSON, nullable=False, default=list)
    terminal_status = Column(String(16), nullable=False)           # submitted | timed_out
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
