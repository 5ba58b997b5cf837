from app.domain.attempts import service as attempts
from app.domain.reports import service as reports
from app.domain.sessions import service as sessions
from app.domain.submissions import gate
from conftest import TEACHER, correct_for, make_paper


def test_results_average_rounds_half_up(db, clock):
    s = sessions.create_session(db, make_paper(20), "aula-1", created_by=TEACHER, roster=["ana", "beto"])
    sessions.activate(db, s.id, 30, clock=clock)
    for student, correct in (("ana", 12), ("beto", 13)):   # 60 y 65
        a, _ = attempts.get_or_create_attempt(db, s.id, student, clock=clock)
        gate.submit(db, a.id, {f"q{i}": correct_for(i) for i in range(1, correct + 1)}, "submitted", clock=clock)

    stats = reports.session_results(db, s.id)["stats"]
    assert stats["averageScore"] == 63
    assert (stats["highestScore"], stats["lowestScore"]) == (65, 60)
    assert [r["studentId"] for r in reports.session_results(db, s.id)["results"]] == ["beto", "ana"]
