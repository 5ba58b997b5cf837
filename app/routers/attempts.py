from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from app.core.clock import Clock, seconds_until
from app.deps import Identity, get_clock, get_db, require_student
from app.domain.analytics import service as analytics
from app.domain.attempts import service as attempts
from app.domain.reports import service as reports
from app.domain.sessions.service import get_session
from app.domain.sessions.snapshot import student_view
from app.domain.submissions import gate
from app.models.attempt import Attempt
from app.models.score_card import ScoreCard
from app.schemas.attempt import AnswerIn, AttemptOut, BeginOut, ScoreCardOut, SubmissionOut, SubmitIn

router = APIRouter(prefix="/student", tags=["student"])
log = logging.getLogger("attempts")


def _attempt_out(a: Attempt, ends_at, now) -> AttemptOut:
    return AttemptOut(
        attemptId=a.id,
        sessionId=a.session_id,
        status=a.status,
        answers=a.answers or {},
        version=a.version,
        startedAt=a.started_at,
        submittedAt=a.submitted_at,
        timeRemainingSeconds=seconds_until(ends_at, now) if a.status == "in_progress" else 0,
    )

def card_out(card: ScoreCard | None) -> ScoreCardOut | None:
    summary = reports.card_summary(card)
    return ScoreCardOut(**summary) if summary else None


@router.get("/tests/active")
def active_tests(db: Session = Depends(get_db), me: Identity = Depends(require_student),
                 clock: Clock = Depends(get_clock)):
    return reports.active_tests_for_student(db, me.sub, clock=clock)

@router.post("/tests/{session_id}/begin", response_model=BeginOut)
def begin_attempt(session_id: int, db: Session = Depends(get_db),
                  me: Identity = Depends(require_student), clock: Clock = Depends(get_clock)):
    a, created = attempts.get_or_create_attempt(db, session_id, me.sub, clock=clock)
    s = get_session(db, session_id)
    base = _attempt_out(a, s.ends_at, clock.now())
    return BeginOut(
        **base.model_dump(),
        created=created,
        title=s.title,
        endsAt=s.ends_at,
        questions=student_view(s.paper_snapshot),
    )

@router.put("/attempts/{attempt_id}/answers", response_model=AttemptOut)
def record_answer(attempt_id: int, payload: AnswerIn, db: Session = Depends(get_db),
                  me: Identity = Depends(require_student), clock: Clock = Depends(get_clock)):
    a = attempts.record_answer(db, attempt_id, payload.questionId, payload.selection,
                               clock=clock, student_id=me.sub)
    s = get_session(db, a.session_id)
    return _attempt_out(a, s.ends_at, clock.now())

@router.post("/attempts/{attempt_id}/submit", response_model=SubmissionOut)
def submit_attempt(attempt_id: int, payload: SubmitIn | None = None, db: Session = Depends(get_db),
                   me: Identity = Depends(require_student), clock: Clock = Depends(get_clock)):
    res = gate.submit(db, attempt_id, payload.answers if payload else None, "submitted",
                      clock=clock, student_id=me.sub)
    if res.late:
        log.info("attempt %s: late submit by %s resolved as %s", attempt_id, me.sub, res.attempt.status)
    return SubmissionOut(
        attemptId=res.attempt.id,
        status=res.attempt.status,
        created=res.created,
        late=res.late,
        submittedAt=res.attempt.submitted_at,
        scoreCard=card_out(res.score_card),
    )

@router.get("/attempts/{attempt_id}")
def attempt_detail(attempt_id: int, db: Session = Depends(get_db), me: Identity = Depends(require_student)):
    return reports.attempt_detail(db, attempt_id, me.sub)

@router.get("/analytics")
def my_analytics(subject: str | None = None, db: Session = Depends(get_db),
                 me: Identity = Depends(require_student)):
    return analytics.student_analytics(db, me.sub, subject=subject)
