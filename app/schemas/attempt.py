from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AnswerIn(BaseModel):
    questionId: str
    # índice de opción (objetivas), texto (subjetivas) o null para desmarcar
    selection: Any = None

class SubmitIn(BaseModel):
    answers: Optional[Dict[str, Any]] = None

class ScoreCardOut(BaseModel):
    available: bool
    error: Optional[str] = None
    totalQuestions: int
    attemptedQuestions: int
    correctAnswers: int
    wrongAnswers: int
    skipped: int
    pendingReview: int = 0
    score: Optional[int] = None
    accuracy: Optional[float] = None
    totalTimeTaken: int
    avgTimePerQuestion: float

class AttemptOut(BaseModel):
    attemptId: int
    sessionId: int
    status: str
    answers: Dict[str, Any]
    version: int
    startedAt: Optional[datetime] = None
    submittedAt: Optional[datetime] = None
    timeRemainingSeconds: Optional[int] = None

class BeginOut(AttemptOut):
    created: bool
    title: str
    endsAt: Optional[datetime] = None
    questions: List[Dict[str, Any]]

class SubmissionOut(BaseModel):
    attemptId: int
    status: str
    created: bool
    late: bool = False
    submittedAt: Optional[datetime] = None
    scoreCard: Optional[ScoreCardOut] = None
