from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionIn(BaseModel):
    id: Optional[str] = None
    text: str = ""
    options: List[str] = []
    correctIndex: Optional[int] = None
    subject: Optional[str] = None
    chapter: Optional[str] = None
    difficulty: Optional[str] = None
    type: Optional[Literal["objective", "subjective"]] = None
    image: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

class PaperIn(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    subject: Optional[str] = None
    questions: List[QuestionIn]

    @field_validator("questions")
    @classmethod
    def not_empty(cls, v: List[QuestionIn]) -> List[QuestionIn]:
        if not v:
            raise ValueError("El cuestionario debe tener al menos una pregunta")
        return v

class SessionCreate(BaseModel):
    classroomId: str = Field(min_length=1, max_length=64)
    roster: List[str] = []
    title: Optional[str] = Field(default=None, max_length=255)
    paper: Optional[PaperIn] = None
    paperId: Optional[str] = None

    @model_validator(mode="after")
    def paper_or_id(self):
        if (self.paper is None) == (self.paperId is None):
            raise ValueError("Envía 'paper' o 'paperId' (sólo uno)")
        return self

class SessionStart(BaseModel):
    durationMinutes: int

class SessionReassign(BaseModel):
    classroomId: str = Field(min_length=1, max_length=64)
    roster: List[str] = []

class SessionOut(BaseModel):
    id: int
    title: str
    subject: Optional[str] = None
    classroomId: str
    status: str
    durationMinutes: Optional[int] = None
    startedAt: Optional[datetime] = None
    endsAt: Optional[datetime] = None
    closedAt: Optional[datetime] = None
    createdBy: str
    createdAt: Optional[datetime] = None
    totalStudents: int = 0
    questionsCount: int = 0
    completedCount: Optional[int] = None

class SessionPage(BaseModel):
    items: List[SessionOut]
    total: int
    page: int
    limit: int
    pages: int

class CloseOut(BaseModel):
    session: SessionOut
    transitioned: bool
    forcedSubmissions: int
    failedSubmissions: int

class LiveStatusOut(BaseModel):
    sessionId: int
    status: str
    startedAt: Optional[datetime] = None
    endsAt: Optional[datetime] = None
    timeRemainingSeconds: Optional[int] = None
    totalStudents: int
    submittedCount: int
    inProgressCount: int
    notStartedCount: int
    recentSubmissions: List[dict[str, Any]]
