"""
Carga ScoreCards + sesiones desde la DB y delega en el aggregator (puro).
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.analytics import aggregator
from app.domain.analytics.aggregator import ScoredAttempt, SessionFacts
from app.models.score_card import ScoreCard
from app.models.test_session import TestSession

log = logging.getLogger("analytics")


def _facts(s: TestSession) -> SessionFacts:
    return SessionFacts(
        session_id=s.id,
        title=s.title,
        subject=s.subject,
        classroom_id=s.classroom_id,
        created_by=s.created_by,
        roster_size=len(s.roster or []),
        started_at=s.started_at,
    )

def _scored(c: ScoreCard) -> ScoredAttempt:
    return ScoredAttempt(
        attempt_id=c.attempt_id,
        session_id=c.session_id,
        student_id=c.student_id,
        score=int(c.score),
        accuracy=float(c.accuracy),
        submitted_at=c.submitted_at,
        chapters=tuple((c.breakdown or {}).get("chapter", [])),
    )

def load_facts(db: Session, *, teacher_id: Optional[str] = None, classroom_id: Optional[str] = None,
               subject: Optional[str] = None, student_id: Optional[str] = None
               ) -> Tuple[List[SessionFacts], List[ScoredAttempt]]:
    """Sesiones ya iniciadas (no draft) y sus ScoreCards disponibles, según filtros."""
    q = select(TestSession).where(TestSession.status.in_(("active", "completed", "cancelled")))
    if teacher_id:
        q = q.where(TestSession.created_by == teacher_id)
    if classroom_id:
        q = q.where(TestSession.classroom_id == classroom_id)
    if subject:
        q = q.where(TestSession.subject == subject)
    sessions = db.execute(q).scalars().all()
    if not sessions:
        return [], []

    cq = select(ScoreCard).where(
        ScoreCard.session_id.in_([s.id for s in sessions]),
        ScoreCard.available.is_(True),
    )
    if student_id:
        cq = cq.where(ScoreCard.student_id == student_id)
    cards = db.execute(cq).scalars().all()
    return [_facts(s) for s in sessions], [_scored(c) for c in cards]

def class_analytics(db: Session, *, teacher_id: Optional[str], scope: str = "teacher",
                    classroom_id: Optional[str] = None, subject: Optional[str] = None) -> Dict[str, Any]:
    filters = {"teacherId": teacher_id, "classroomId": classroom_id, "subject": subject}
    sessions, attempts = load_facts(db, teacher_id=teacher_id, classroom_id=classroom_id, subject=subject)
    snapshot = aggregator.build_snapshot(scope, sessions, attempts, filters=filters)
    log.info("analytics scope=%s sessions=%d attempts=%d key=%s",
             scope, len(sessions), len(attempts), snapshot["cacheKey"][:10])
    return snapshot

def student_analytics(db: Session, student_id: str, *, subject: Optional[str] = None) -> Dict[str, Any]:
    sessions, attempts = load_facts(db, subject=subject, student_id=student_id)
    return aggregator.student_dashboard(student_id, sessions, attempts)
