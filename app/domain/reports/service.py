"""
Superficie de lectura: status en vivo (polling del docente), resultados,
detalle de intento del estudiante, overview por prueba y pruebas activas.
Sólo lee; nunca dispara transiciones (eso es del enforcer).
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from app.core.clock import Clock, seconds_until
from app.core.errors import InvalidStateError
from app.core.settings import STATUS_RECENT_LIMIT
from app.domain.attempts.service import get_attempt
from app.domain.scoring.engine import round_half_up
from app.domain.sessions.service import get_session, window_open
from app.models.attempt import Attempt, TERMINAL_ATTEMPT_STATUSES
from app.models.score_card import ScoreCard
from app.models.test_session import TestSession

WEAK_ATTEMPT_CHAPTER_ACCURACY = 50.0

def card_summary(card: Optional[ScoreCard]) -> Optional[Dict[str, Any]]:
    if card is None:
        return None
    return {
        "available": bool(card.available),
        "error": card.error,
        "totalQuestions": card.total_questions,
        "attemptedQuestions": card.attempted_questions,
        "correctAnswers": card.correct_answers,
        "wrongAnswers": card.wrong_answers,
        "skipped": card.skipped,
        "pendingReview": card.pending_review,
        "score": card.score if card.available else None,
        "accuracy": card.accuracy if card.available else None,
        "totalTimeTaken": card.total_time_taken,
        "avgTimePerQuestion": card.avg_time_per_question,
    }

def live_status(db: Session, session_id: int, *, clock: Clock, recent_limit: int = STATUS_RECENT_LIMIT) -> Dict[str, Any]:
    s = get_session(db, session_id)
    now = clock.now()
    counts = dict(db.execute(
        select(Attempt.status, func.count(Attempt.id))
        .where(Attempt.session_id == s.id)
        .group_by(Attempt.status)
    ).all())
    submitted = int(counts.get("submitted", 0)) + int(counts.get("timed_out", 0))
    in_progress = int(counts.get("in_progress", 0))
    total_students = len(s.roster or [])

    recent = db.execute(
        select(Attempt, ScoreCard)
        .join(ScoreCard, ScoreCard.attempt_id == Attempt.id, isouter=True)
        .where(Attempt.session_id == s.id, Attempt.status.in_(TERMINAL_ATTEMPT_STATUSES))
        .order_by(Attempt.submitted_at.desc(), Attempt.id.desc())
        .limit(recent_limit)
    ).all()

    return {
        "sessionId": s.id,
        "status": s.status,
        "startedAt": s.started_at,
        "endsAt": s.ends_at,
        # cosmético: el cliente sólo lo muestra, la autorización es del servidor
        "timeRemainingSeconds": seconds_until(s.ends_at, now) if s.status == "active" else 0,
        "totalStudents": total_students,
        "submittedCount": submitted,
        "inProgressCount": in_progress,
        "notStartedCount": max(0, total_students - submitted - in_progress),
        "recentSubmissions": [
            {
                "attemptId": a.id,
                "studentId": a.student_id,
                "status": a.status,
                "submittedAt": a.submitted_at,
                "score": c.score if c is not None and c.available else None,
                "attemptedQuestions": c.attempted_questions if c is not None else None,
                "correctAnswers": c.correct_answers if c is not None else None,
            }
            for a, c in recent
        ],
    }

def session_results(db: Session, session_id: int) -> Dict[str, Any]:
    s = get_session(db, session_id)
    rows = db.execute(
        select(Attempt, ScoreCard)
        .join(ScoreCard, ScoreCard.attempt_id == Attempt.id, isouter=True)
        .where(Attempt.session_id == s.id)
    ).all()

    def _key(row):
        a, c = row
        sc = c.score if (c is not None and c.available) else -1
        return (-sc, a.student_id)

    rows = sorted(rows, key=_key)
    scores = [c.score for _, c in rows if c is not None and c.available]
    return {
        "session": s,
        "results": [
            {
                "attemptId": a.id,
                "studentId": a.student_id,
                "status": a.status,
                "startedAt": a.started_at,
                "submittedAt": a.submitted_at,
                "scoreCard": card_summary(c),
            }
            for a, c in rows
        ],
        "stats": {
            "totalStudents": len(s.roster or []),
            "participated": len(rows),
            "completed": sum(1 for a, _ in rows if a.status in TERMINAL_ATTEMPT_STATUSES),
            "inProgress": sum(1 for a, _ in rows if a.status == "in_progress"),
            "scored": len(scores),
            "averageScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
            "highestScore": max(scores) if scores else 0,
            "lowestScore": min(scores) if scores else 0,
        },
    }

def attempt_detail(db: Session, attempt_id: int, student_id: str) -> Dict[str, Any]:
    """Revisión pregunta por pregunta; sólo el dueño y sólo con el intento cerrado."""
    a = get_attempt(db, attempt_id, student_id)
    if a.status not in TERMINAL_ATTEMPT_STATUSES:
        raise InvalidStateError("La revisión está disponible al terminar la prueba")
    s = get_session(db, a.session_id)
    card = db.execute(select(ScoreCard).where(ScoreCard.attempt_id == a.id)).scalar_one_or_none()
    outcomes = {r["questionId"]: r["outcome"] for r in ((card.question_results if card else None) or [])}

    questions = []
    for q in s.questions:
        qid = str(q["id"])
        questions.append({
            "questionId": qid,
            "text": q.get("text"),
            "options": q.get("options") or [],
            "type": q.get("type"),
            "chapter": q.get("chapter"),
            "subject": q.get("subject"),
            "difficulty": q.get("difficulty"),
            "selectedIndex": (a.answers or {}).get(qid),
            "correctIndex": q.get("correctIndex") if q.get("type") == "objective" else None,
            "outcome": outcomes.get(qid),
        })

    return {
        "attemptId": a.id,
        "sessionId": s.id,
        "testTitle": s.title,
        "status": a.status,
        "startedAt": a.started_at,
        "submittedAt": a.submitted_at,
        "scoreCard": card_summary(card),
        "chapterBreakdown": (card.breakdown or {}).get("chapter", []) if card else [],
        "difficultyBreakdown": (card.breakdown or {}).get("difficulty", []) if card else [],
        "mistakes": (card.mistakes or []) if card else [],
        "questions": questions,
    }

def test_overview(db: Session, session_id: int) -> Dict[str, Any]:
    """Tabla por estudiante: score, precisión, capítulos flojos del intento y tiempo usado."""
    s = get_session(db, session_id)
    rows = db.execute(
        select(ScoreCard).where(ScoreCard.session_id == s.id, ScoreCard.available.is_(True))
        .order_by(ScoreCard.score.desc(), ScoreCard.student_id)
    ).scalars().all()
    students = []
    for c in rows:
        weak = [
            ch["chapter"] for ch in (c.breakdown or {}).get("chapter", [])
            if ch.get("attempted") and ch.get("accuracy", 0) < WEAK_ATTEMPT_CHAPTER_ACCURACY
        ]
        students.append({
            "studentId": c.student_id,
            "score": c.score,
            "accuracy": c.accuracy,
            "weakChapters": weak,
            "timeUsed": c.total_time_taken,
            "status": c.terminal_status,
        })
    return {
        "sessionId": s.id,
        "title": s.title,
        "status": s.status,
        "totalStudents": len(s.roster or []),
        "participated": len(students),
        "students": students,
    }

def active_tests_for_student(db: Session, student_id: str, *, clock: Clock) -> List[Dict[str, Any]]:
    now = clock.now()
    sessions = db.execute(
        select(TestSession).where(TestSession.status == "active", TestSession.ends_at > now)
        .order_by(TestSession.ends_at, TestSession.id)
    ).scalars().all()
    mine = [s for s in sessions if student_id in (s.roster or [])]
    if not mine:
        return []

    attempts = {
        a.session_id: a for a in db.execute(
            select(Attempt).where(Attempt.student_id == student_id,
                                  Attempt.session_id.in_([s.id for s in mine]))
        ).scalars().all()
    }
    out = []
    for s in mine:
        if not window_open(s, now):
            continue
        a = attempts.get(s.id)
        status = a.status if a else "not_started"
        if status in TERMINAL_ATTEMPT_STATUSES:
            continue
        out.append({
            "sessionId": s.id,
            "title": s.title,
            "subject": s.subject,
            "classroomId": s.classroom_id,
            "questionsCount": len(s.questions),
            "durationMinutes": s.duration_minutes,
            "startedAt": s.started_at,
            "endsAt": s.ends_at,
            "timeRemainingSeconds": seconds_until(s.ends_at, now),
            "studentStatus": status,
            "canStart": a is None,
            "attemptId": a.id if a else None,
        })
    return out
