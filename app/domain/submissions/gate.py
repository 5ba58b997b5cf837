"""
Submission Gate: a lo sumo UNA transición terminal por intento.

La transición in_progress -> {submitted, timed_out} es un único UPDATE condicionado
(compare-and-set). Quien gana congela las respuestas y calcula el ScoreCard en la
misma transacción; quien pierde (reintento de red, doble click, sweep del enforcer)
no produce efectos y recibe el resultado ya guardado.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, ensure_utc
from app.core.errors import InvalidStateError, NotFoundError, ScoringError
from app.db.cas import compare_and_set
from app.domain.attempts.service import MAX_WRITE_RETRIES, normalize_selection, question_index
from app.domain.scoring.engine import score
from app.domain.sessions.service import window_open
from app.models.attempt import Attempt, TERMINAL_ATTEMPT_STATUSES
from app.models.score_card import ScoreCard
from app.models.test_session import TestSession

log = logging.getLogger("submissions")


@dataclass(frozen=True)
class FrozenAttempt:
    answers: Dict[str, Any]
    total_time_taken: int


@dataclass
class SubmissionResult:
    attempt: Attempt
    score_card: Optional[ScoreCard]
    created: bool          # True sólo para la llamada que hizo la transición
    late: bool = False     # el estudiante envió después del deadline


def _existing(db: Session, attempt: Attempt, *, late: bool = False) -> SubmissionResult:
    card = db.execute(select(ScoreCard).where(ScoreCard.attempt_id == attempt.id)).scalar_one_or_none()
    return SubmissionResult(attempt=attempt, score_card=card, created=False, late=late)

def _freeze_answers(session: TestSession, buffer: Mapping[str, Any] | None,
                    final_answers: Mapping[str, Any] | None) -> Dict[str, Any]:
    questions = question_index(session)
    frozen = {qid: (buffer or {}).get(qid) for qid in questions}
    for qid, value in (final_answers or {}).items():
        q = questions.get(str(qid))
        if q is None:
            log.warning("session %s: ignoring answer for unknown question %s", session.id, qid)
            continue
        frozen[str(qid)] = normalize_selection(q, value)
    return frozen

def _time_taken(session: TestSession, attempt: Attempt, now) -> int:
    elapsed = int((now - ensure_utc(attempt.started_at)).total_seconds())
    allotted = int(session.duration_minutes or 0) * 60
    if allotted:
        elapsed = min(elapsed, allotted)
    return max(0, elapsed)

def _build_card(attempt: Attempt, session: TestSession, frozen: FrozenAttempt,
                terminal_status: str, now) -> ScoreCard:
    card = ScoreCard(
        attempt_id=attempt.id,
        session_id=session.id,
        student_id=attempt.student_id,
        terminal_status=terminal_status,
        submitted_at=now,
    )
    try:
        result = score(frozen, session.paper_snapshot or {})
    except ScoringError as e:
        # fatal sólo para este intento: queda terminal, con score no disponible
        log.error("attempt %s: scoring failed: %s", attempt.id, e)
        card.available = False
        card.error = str(e)
        card.total_questions = len(session.questions)
        card.total_time_taken = frozen.total_time_taken
        return card
    for k, v in result.as_columns().items():
        setattr(card, k, v)
    card.available = True
    return card

def submit(db: Session, attempt_id: int, final_answers: Optional[Mapping[str, Any]],
           terminal_status: str, *, clock: Clock, student_id: Optional[str] = None) -> SubmissionResult:
    if terminal_status not in TERMINAL_ATTEMPT_STATUSES:
        raise ValueError(f"terminal_status inválido: {terminal_status}")

    for _ in range(MAX_WRITE_RETRIES):
        attempt = db.get(Attempt, attempt_id, populate_existing=True)
        if not attempt or (student_id is not None and attempt.student_id != student_id):
            raise NotFoundError("Intento no encontrado")
        if attempt.status in TERMINAL_ATTEMPT_STATUSES:
            return _existing(db, attempt)

        session = db.get(TestSession, attempt.session_id, populate_existing=True)
        now = clock.now()
        status, answers, late = terminal_status, final_answers, False
        if status == "submitted" and not window_open(session, now):
            # envío tardío: mismo resultado que el timeout forzado, con el buffer guardado
            status, answers, late = "timed_out", None, True

        version = int(attempt.version or 0)
        frozen = FrozenAttempt(
            answers=_freeze_answers(session, attempt.answers, answers),
            total_time_taken=_time_taken(session, attempt, now),
        )
        # la versión leída garantiza que ninguna edición confirmada quede fuera del congelado
        won = compare_and_set(db, Attempt, attempt.id, "in_progress", {
            "status": status,
            "answers": frozen.answers,
            "submitted_at": now,
            "total_time_taken": frozen.total_time_taken,
            "version": version + 1,
        }, version=version)
        if not won:
            # terminal (otro envío ganó) o una edición movió la versión: releer
            db.rollback()
            continue

        card = _build_card(attempt, session, frozen, status, now)
        db.add(card)
        db.commit()
        db.refresh(attempt)
        db.refresh(card)
        log.info("attempt %s -> %s score=%s", attempt.id, status, card.score if card.available else "n/a")
        return SubmissionResult(attempt=attempt, score_card=card, created=True, late=late)
    raise InvalidStateError("Demasiadas ediciones concurrentes, intenta de nuevo")

def force_submit_open_attempts(db: Session, session_id: int, *, clock: Clock) -> Tuple[int, int]:
    """Timeout forzado de cada intento in_progress. Un fallo no corta el resto. -> (forzados, fallidos)"""
    ids = db.execute(
        select(Attempt.id).where(Attempt.session_id == session_id, Attempt.status == "in_progress")
        .order_by(Attempt.id)
    ).scalars().all()
    forced = failed = 0
    for attempt_id in ids:
        try:
            res = submit(db, attempt_id, None, "timed_out", clock=clock)
            if res.created:
                forced += 1
        except Exception:
            db.rollback()
            failed += 1
            log.exception("session %s: forced submission of attempt %s failed", session_id, attempt_id)
    return forced, failed
