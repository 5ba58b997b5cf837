from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
import logging, math

from app.core.clock import Clock
from app.core.errors import ForbiddenError
from app.deps import Identity, get_clock, get_db, require_staff
from app.domain.reports import service as reports
from app.domain.sessions import service as sessions
from app.models.test_session import TestSession
from app.schemas.session import (
    CloseOut, LiveStatusOut, SessionCreate, SessionOut, SessionPage, SessionReassign, SessionStart,
)
from app.services.paper_bank import PaperBankClient, get_paper_bank

router = APIRouter(prefix="/sessions", tags=["sessions"])
log = logging.getLogger("sessions")


def session_out(s: TestSession, completed: int | None = None) -> SessionOut:
    return SessionOut(
        id=s.id,
        title=s.title,
        subject=s.subject,
        classroomId=s.classroom_id,
        status=s.status,
        durationMinutes=s.duration_minutes,
        startedAt=s.started_at,
        endsAt=s.ends_at,
        closedAt=s.closed_at,
        createdBy=s.created_by,
        createdAt=s.created_at,
        totalStudents=len(s.roster or []),
        questionsCount=len(s.questions),
        completedCount=completed,
    )

def _owned(db: Session, session_id: int, me: Identity) -> TestSession:
    s = sessions.get_session(db, session_id)
    if not me.is_admin and s.created_by != me.sub:
        raise ForbiddenError("Esta prueba pertenece a otro docente")
    return s


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def create_session(payload: SessionCreate, db: Session = Depends(get_db),
                   me: Identity = Depends(require_staff),
                   bank: PaperBankClient = Depends(get_paper_bank)):
    if payload.paper is not None:
        paper = payload.paper.model_dump()
    else:
        # se consulta una única vez; desde aquí manda el snapshot
        paper = bank.fetch_paper(payload.paperId)
    s = sessions.create_session(db, paper, payload.classroomId, created_by=me.sub,
                                roster=payload.roster, title=payload.title)
    return session_out(s)

@router.get("", response_model=SessionPage)
def list_sessions(status_: str | None = Query(default=None, alias="status"),
                  classroomId: str | None = None,
                  page: int = Query(default=1, ge=1),
                  limit: int = Query(default=20, ge=1),
                  db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    rows, total = sessions.list_sessions(
        db, created_by=None if me.is_admin else me.sub,
        status=status_, classroom_id=classroomId, page=page, limit=limit,
    )
    limit = min(limit, 100)
    return SessionPage(
        items=[session_out(r["session"], r["completedCount"]) for r in rows],
        total=total, page=page, limit=limit, pages=math.ceil(total / limit) if total else 0,
    )

@router.get("/{session_id}", response_model=SessionOut)
def get_session(session_id: int, db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    return session_out(_owned(db, session_id, me))

@router.patch("/{session_id}/reassign", response_model=SessionOut)
def reassign_session(session_id: int, payload: SessionReassign, db: Session = Depends(get_db),
                     me: Identity = Depends(require_staff)):
    _owned(db, session_id, me)
    return session_out(sessions.reassign(db, session_id, payload.classroomId, payload.roster))

@router.post("/{session_id}/start", response_model=SessionOut)
def start_session(session_id: int, payload: SessionStart, db: Session = Depends(get_db),
                  me: Identity = Depends(require_staff), clock: Clock = Depends(get_clock)):
    _owned(db, session_id, me)
    return session_out(sessions.activate(db, session_id, payload.durationMinutes, clock=clock))

@router.post("/{session_id}/stop", response_model=CloseOut)
def stop_session(session_id: int, db: Session = Depends(get_db),
                 me: Identity = Depends(require_staff), clock: Clock = Depends(get_clock)):
    _owned(db, session_id, me)
    report = sessions.force_complete(db, session_id, clock=clock)
    log.info("session %s stopped by %s (forced=%d)", session_id, me.sub, report.forced)
    return CloseOut(session=session_out(report.session), transitioned=report.transitioned,
                    forcedSubmissions=report.forced, failedSubmissions=report.failed)

@router.post("/{session_id}/cancel", response_model=SessionOut)
def cancel_session(session_id: int, db: Session = Depends(get_db),
                   me: Identity = Depends(require_staff), clock: Clock = Depends(get_clock)):
    _owned(db, session_id, me)
    return session_out(sessions.cancel(db, session_id, clock=clock))

@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: int, db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    _owned(db, session_id, me)
    sessions.delete_session(db, session_id)

@router.get("/{session_id}/status", response_model=LiveStatusOut)
def live_status(session_id: int, db: Session = Depends(get_db),
                me: Identity = Depends(require_staff), clock: Clock = Depends(get_clock)):
    _owned(db, session_id, me)
    return reports.live_status(db, session_id, clock=clock)

@router.get("/{session_id}/results")
def session_results(session_id: int, db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    _owned(db, session_id, me)
    data = reports.session_results(db, session_id)
    data["session"] = session_out(data["session"])
    return data

@router.get("/{session_id}/overview")
def session_overview(session_id: int, db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    _owned(db, session_id, me)
    return reports.test_overview(db, session_id)
