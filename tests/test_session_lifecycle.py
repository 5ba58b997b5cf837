from datetime import timedelta

import pytest

from app.core.clock import ensure_utc
from app.core.errors import InvalidStateError, NotFoundError
from app.domain.attempts import service as attempts
from app.domain.sessions import service as sessions
from app.models.attempt import Attempt
from app.models.score_card import ScoreCard
from conftest import ROSTER, TEACHER, make_paper


def _draft(db, **kw):
    return sessions.create_session(db, make_paper(), "aula-1", created_by=TEACHER, roster=ROSTER, **kw)


def test_create_session_is_draft_with_frozen_snapshot(db):
    paper = make_paper(3)
    s = sessions.create_session(db, paper, "aula-1", created_by=TEACHER, roster=["b", "a", "a"])
    assert s.status == "draft"
    assert s.title == "Prueba de fracciones"
    assert s.subject == "Matemática"
    assert s.roster == ["a", "b"]
    assert s.ends_at is None

    # editar el banco después no cambia la sesión asignada
    paper["questions"][0]["text"] = "editada"
    paper["questions"][0]["correctIndex"] = 3
    db.expire_all()
    q1 = sessions.get_session(db, s.id).questions[0]
    assert q1["text"] == "Pregunta 1"
    assert q1["correctIndex"] == 1

def test_snapshot_cannot_be_replaced(db):
    s = _draft(db)
    with pytest.raises(ValueError):
        s.paper_snapshot = {"questions": []}

def test_activate_sets_ends_at_once(db, clock):
    s = _draft(db)
    s = sessions.activate(db, s.id, 30, clock=clock)
    assert s.status == "active"
    assert ensure_utc(s.started_at) == clock.now()
    assert ensure_utc(s.ends_at) == clock.now() + timedelta(minutes=30)

    clock.advance(minutes=5)
    with pytest.raises(InvalidStateError):
        sessions.activate(db, s.id, 60, clock=clock)
    db.expire_all()
    assert ensure_utc(sessions.get_session(db, s.id).ends_at) == ensure_utc(s.started_at) + timedelta(minutes=30)

@pytest.mark.parametrize("minutes", [0, -5, 10_000])
def test_activate_rejects_invalid_duration(db, clock, minutes):
    s = _draft(db)
    with pytest.raises(InvalidStateError):
        sessions.activate(db, s.id, minutes, clock=clock)

def test_unknown_session(db, clock):
    with pytest.raises(NotFoundError):
        sessions.activate(db, 999, 30, clock=clock)

def test_cancel_from_draft(db, clock):
    s = sessions.cancel(db, _draft(db).id, clock=clock)
    assert s.status == "cancelled"
    with pytest.raises(InvalidStateError):
        sessions.activate(db, s.id, 30, clock=clock)

def test_cancel_active_forces_open_attempts(db, clock, active_session):
    a, _ = attempts.get_or_create_attempt(db, active_session.id, "ana", clock=clock)
    attempts.record_answer(db, a.id, "q1", 1, clock=clock)
    s = sessions.cancel(db, active_session.id, clock=clock)
    assert s.status == "cancelled"
    db.expire_all()
    a = db.get(Attempt, a.id)
    assert a.status == "timed_out"
    card = db.query(ScoreCard).filter_by(attempt_id=a.id).one()
    assert card.correct_answers == 1

def test_terminal_states_are_final(db, clock, active_session):
    report = sessions.force_complete(db, active_session.id, clock=clock)
    assert report.transitioned is True
    assert report.session.status == "completed"
    with pytest.raises(InvalidStateError):
        sessions.cancel(db, active_session.id, clock=clock)
    with pytest.raises(InvalidStateError):
        sessions.activate(db, active_session.id, 30, clock=clock)

    again = sessions.force_complete(db, active_session.id, clock=clock)
    assert again.transitioned is False
    assert again.forced == 0

def test_force_complete_keeps_ends_at(db, clock, active_session):
    ends_at = ensure_utc(active_session.ends_at)
    clock.advance(minutes=3)
    report = sessions.force_complete(db, active_session.id, clock=clock)
    assert ensure_utc(report.session.ends_at) == ends_at
    assert ensure_utc(report.session.closed_at) == clock.now()

def test_reassign_only_in_draft(db, clock):
    s = _draft(db)
    s = sessions.reassign(db, s.id, "aula-2", ["zoe"])
    assert (s.classroom_id, s.roster) == ("aula-2", ["zoe"])
    sessions.activate(db, s.id, 30, clock=clock)
    with pytest.raises(InvalidStateError):
        sessions.reassign(db, s.id, "aula-3")

def test_delete_removes_attempts_and_cards(db, clock, active_session):
    a, _ = attempts.get_or_create_attempt(db, active_session.id, "ana", clock=clock)
    with pytest.raises(InvalidStateError):
        sessions.delete_session(db, active_session.id)
    sessions.force_complete(db, active_session.id, clock=clock)
    sessions.delete_session(db, active_session.id)
    db.expire_all()
    assert db.get(Attempt, a.id) is None
    assert db.query(ScoreCard).count() == 0
    with pytest.raises(NotFoundError):
        sessions.get_session(db, active_session.id)

def test_list_sessions_paginates_and_counts(db, clock):
    ids = [_draft(db, title=f"Prueba {i}").id for i in range(3)]
    sessions.activate(db, ids[0], 30, clock=clock)
    a, _ = attempts.get_or_create_attempt(db, ids[0], "ana", clock=clock)
    sessions.force_complete(db, ids[0], clock=clock)
    sessions.create_session(db, make_paper(), "aula-9", created_by="otro", roster=[])

    rows, total = sessions.list_sessions(db, created_by=TEACHER, page=1, limit=2)
    assert total == 3
    assert len(rows) == 2

    rows, total = sessions.list_sessions(db, created_by=TEACHER, status="completed")
    assert total == 1
    assert rows[0]["completedCount"] == 1
    assert rows[0]["totalStudents"] == len(ROSTER)

    _, total = sessions.list_sessions(db, limit=1000)
    assert total == 4
