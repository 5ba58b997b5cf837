"""
Session Store y ciclo de vida.

    draft -> active -> {completed, cancelled}

Cada transición es un compare-and-set sobre `status`; completed y cancelled son
terminales. Detener o cancelar una sesión activa equivale a un deadline inmediato:
los intentos abiertos se envían por la misma gate que usa el Deadline Enforcer.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from app.core.clock import Clock, ensure_utc
from app.core.errors import InvalidStateError, NotFoundError
from app.core.settings import MIN_DURATION_MINUTES, MAX_DURATION_MINUTES
from app.db.cas import compare_and_set
from app.domain.sessions.snapshot import freeze_paper
from app.models.attempt import Attempt
from app.models.score_card import ScoreCard
from app.models.test_session import TestSession, TERMINAL_SESSION_STATUSES

log = logging.getLogger("sessions")


@dataclass
class CloseReport:
    session: TestSession
    transitioned: bool       # esta llamada hizo la transición de estado
    forced: int = 0          # intentos enviados por timeout en esta llamada
    failed: int = 0


def window_open(session: Optional[TestSession], now: datetime) -> bool:
    """La única verificación de deadline: status activo y now < endsAt (reloj del servidor)."""
    if session is None or session.status != "active" or session.ends_at is None:
        return False
    return now < ensure_utc(session.ends_at)

def get_session(db: Session, session_id: int, *, fresh: bool = False) -> TestSession:
    s = db.get(TestSession, session_id, populate_existing=fresh)
    if not s:
        raise NotFoundError("Sesión de prueba no encontrada")
    return s

def create_session(db: Session, paper: Dict[str, Any], classroom_id: str, *, created_by: str,
                   roster: Optional[List[str]] = None, title: Optional[str] = None) -> TestSession:
    snapshot = freeze_paper(paper)
    s = TestSession(
        title=(title or snapshot["title"]).strip(),
        subject=snapshot.get("subject"),
        classroom_id=str(classroom_id),
        roster=sorted({str(x) for x in (roster or [])}),
        paper_snapshot=snapshot,
        status="draft",
        created_by=str(created_by),
    )
    db.add(s); db.commit(); db.refresh(s)
    log.info("session %s created (draft) classroom=%s questions=%d", s.id, s.classroom_id, len(snapshot["questions"]))
    return s

def activate(db: Session, session_id: int, duration_minutes: int, *, clock: Clock) -> TestSession:
    if not (MIN_DURATION_MINUTES <= int(duration_minutes) <= MAX_DURATION_MINUTES):
        raise InvalidStateError(
            f"Duración inválida (entre {MIN_DURATION_MINUTES} y {MAX_DURATION_MINUTES} minutos)"
        )
    s = get_session(db, session_id)
    now = clock.now()
    won = compare_and_set(db, TestSession, s.id, "draft", {
        "status": "active",
        "duration_minutes": int(duration_minutes),
        "started_at": now,
        "ends_at": now + timedelta(minutes=int(duration_minutes)),
    })
    if not won:
        db.rollback()
        s = get_session(db, session_id, fresh=True)
        raise InvalidStateError(f"No se puede iniciar una prueba con estado: {s.status}")
    db.commit()
    db.refresh(s)
    log.info("session %s active until %s", s.id, s.ends_at)
    return s

def _close(db: Session, session_id: int, target: str, allowed_from: Tuple[str, ...], *,
           clock: Clock, resume_terminal: bool) -> CloseReport:
    # import local: la gate depende de window_open de este módulo
    from app.domain.submissions.gate import force_submit_open_attempts

    s = get_session(db, session_id, fresh=True)
    transitioned = False
    if s.status in allowed_from:
        transitioned = compare_and_set(db, TestSession, s.id, allowed_from, {
            "status": target,
            "closed_at": clock.now(),
        })
        db.commit()
        s = get_session(db, session_id, fresh=True)
        if transitioned:
            log.info("session %s -> %s", s.id, target)
    elif not (resume_terminal and s.status in TERMINAL_SESSION_STATUSES):
        raise InvalidStateError(f"No se puede cerrar una prueba con estado: {s.status}")

    forced, failed = force_submit_open_attempts(db, s.id, clock=clock)
    return CloseReport(session=s, transitioned=transitioned, forced=forced, failed=failed)

def force_complete(db: Session, session_id: int, *, clock: Clock) -> CloseReport:
    """
    active -> completed y timeout forzado de todo intento in_progress.
    Sobre una sesión ya terminal sólo reanuda los envíos pendientes (idempotente).
    """
    return _close(db, session_id, "completed", ("active",), clock=clock, resume_terminal=True)

def cancel(db: Session, session_id: int, *, clock: Clock) -> TestSession:
    report = _close(db, session_id, "cancelled", ("draft", "active"), clock=clock, resume_terminal=False)
    return report.session

def reassign(db: Session, session_id: int, classroom_id: str, roster: Optional[List[str]] = None) -> TestSession:
    s = get_session(db, session_id)
    if s.status != "draft":
        raise InvalidStateError("Sólo se pueden reasignar pruebas que no han iniciado")
    s.classroom_id = str(classroom_id)
    s.roster = sorted({str(x) for x in (roster or [])})
    db.add(s); db.commit(); db.refresh(s)
    return s

def delete_session(db: Session, session_id: int) -> None:
    s = get_session(db, session_id)
    if s.status == "active":
        raise InvalidStateError("Detén la prueba antes de eliminarla")
    db.execute(delete(ScoreCard).where(ScoreCard.session_id == s.id))
    db.execute(delete(Attempt).where(Attempt.session_id == s.id))
    db.delete(s)
    db.commit()
    log.info("session %s deleted", session_id)

def list_sessions(db: Session, *, created_by: Optional[str] = None, status: Optional[str] = None,
                  classroom_id: Optional[str] = None, page: int = 1, limit: int = 20) -> Tuple[List[dict], int]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), 100)

    q = select(TestSession)
    if created_by:
        q = q.where(TestSession.created_by == created_by)
    if status and status != "all":
        q = q.where(TestSession.status == status)
    if classroom_id:
        q = q.where(TestSession.classroom_id == classroom_id)

    total = db.execute(select(func.count()).select_from(q.subquery())).scalar_one() or 0
    rows = db.execute(
        q.order_by(TestSession.created_at.desc(), TestSession.id.desc())
        .offset((page - 1) * limit).limit(limit)
    ).scalars().all()

    ids = [s.id for s in rows]
    completed: Dict[int, int] = {}
    if ids:
        completed = dict(db.execute(
            select(Attempt.session_id, func.count(Attempt.id))
            .where(Attempt.session_id.in_(ids), Attempt.status.in_(("submitted", "timed_out")))
            .group_by(Attempt.session_id)
        ).all())

    out = []
    for s in rows:
        out.append({
            "session": s,
            "totalStudents": len(s.roster or []),
            "completedCount": int(completed.get(s.id, 0)),
        })
    return out, int(total)
