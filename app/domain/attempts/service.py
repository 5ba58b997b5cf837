"""
Attempt Tracker: un intento por (sesión, estudiante), creado en el primer acceso.

Las ediciones de respuestas usan check optimista de `version`: dos ediciones
concurrentes sobre preguntas distintas no se pisan, y una edición que llega
después del submit/timeout nunca muta un intento congelado.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.core.errors import (
    AttemptExpiredError, ForbiddenError, InvalidAnswerError, InvalidStateError,
    NotFoundError, SessionNotActiveError,
)
from app.db.cas import compare_and_set
from app.domain.sessions.service import get_session, window_open
from app.models.attempt import Attempt
from app.models.test_session import TestSession

log = logging.getLogger("attempts")

MAX_WRITE_RETRIES = 10

def get_attempt(db: Session, attempt_id: int, student_id: Optional[str] = None, *, fresh: bool = False) -> Attempt:
    a = db.get(Attempt, attempt_id, populate_existing=fresh)
    # otro estudiante no debe poder distinguir "no existe" de "no es tuyo"
    if not a or (student_id is not None and a.student_id != student_id):
        raise NotFoundError("Intento no encontrado")
    return a

def find_attempt(db: Session, session_id: int, student_id: str) -> Optional[Attempt]:
    return db.execute(
        select(Attempt).where(Attempt.session_id == session_id, Attempt.student_id == student_id)
    ).scalar_one_or_none()

def question_index(session: TestSession) -> Dict[str, Dict[str, Any]]:
    return {str(q["id"]): q for q in session.questions}

def normalize_selection(question: Dict[str, Any], value: Any) -> Any:
    """None desmarca; objetivas aceptan un índice de opción; subjetivas, texto."""
    if value is None:
        return None
    if question.get("type") == "subjective":
        if not isinstance(value, str):
            raise InvalidAnswerError("La respuesta debe ser texto")
        return value.strip() or None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAnswerError("La respuesta debe ser un índice de opción")
    n_options = len(question.get("options") or [])
    if value < 0 or value >= n_options:
        raise InvalidAnswerError(f"Índice fuera de rango (0..{n_options - 1})")
    return value

def get_or_create_attempt(db: Session, session_id: int, student_id: str, *, clock: Clock) -> Tuple[Attempt, bool]:
    """Devuelve (intento, creado). Idempotente: un segundo acceso devuelve el mismo intento."""
    s = get_session(db, session_id)
    now = clock.now()
    if not window_open(s, now):
        raise SessionNotActiveError("La prueba no está activa")
    if student_id not in (s.roster or []):
        raise ForbiddenError("No estás inscrito en esta aula")

    existing = find_attempt(db, s.id, student_id)
    if existing:
        return existing, False

    a = Attempt(
        session_id=s.id,
        student_id=student_id,
        status="in_progress",
        answers={str(q["id"]): None for q in s.questions},
        version=0,
        started_at=now,
        total_time_taken=0,
    )
    db.add(a)
    try:
        db.commit()
    except IntegrityError:
        # otra request del mismo estudiante lo creó primero (unique session+student)
        db.rollback()
        existing = find_attempt(db, s.id, student_id)
        if existing is None:
            raise
        return existing, False
    db.refresh(a)
    log.info("attempt %s created session=%s student=%s", a.id, s.id, student_id)
    return a, True

def record_answer(db: Session, attempt_id: int, question_id: str, selection: Any, *,
                  clock: Clock, student_id: Optional[str] = None) -> Attempt:
    for _ in range(MAX_WRITE_RETRIES):
        a = get_attempt(db, attempt_id, student_id, fresh=True)
        s = db.get(TestSession, a.session_id, populate_existing=True)
        now = clock.now()
        if a.status == "timed_out" or not window_open(s, now):
            raise AttemptExpiredError("El tiempo de la prueba terminó")
        if a.status == "submitted":
            raise InvalidStateError("El intento ya fue enviado")

        q = question_index(s).get(str(question_id))
        if q is None:
            raise NotFoundError("Pregunta no encontrada en esta prueba")
        value = normalize_selection(q, selection)

        answers = dict(a.answers or {})
        answers[str(question_id)] = value
        won = compare_and_set(
            db, Attempt, a.id, "in_progress",
            {"answers": answers, "version": int(a.version or 0) + 1},
            version=int(a.version or 0),
        )
        if won:
            db.commit()
            db.refresh(a)
            return a
        # otro escritor movió la versión (o el intento quedó terminal): releer y reintentar
        db.rollback()
    raise InvalidStateError("Demasiadas ediciones concurrentes, intenta de nuevo")
