import random
from datetime import datetime, timedelta, timezone

from app.domain.analytics import aggregator
from app.domain.analytics.aggregator import ScoredAttempt, SessionFacts
from app.domain.analytics import service as analytics
from app.domain.attempts import service as attempts
from app.domain.sessions import service as sessions
from app.domain.submissions import gate
from conftest import TEACHER, correct_for, make_paper

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _session(i, roster=4, subject="Matemática", teacher=TEACHER):
    return SessionFacts(session_id=i, title=f"Prueba {i}", subject=subject, classroom_id="aula-1",
                        created_by=teacher, roster_size=roster, started_at=T0 + timedelta(days=i))

def _attempt(aid, session_id, student, score, chapters=()):
    return ScoredAttempt(attempt_id=aid, session_id=session_id, student_id=student, score=score,
                         accuracy=float(score), submitted_at=T0 + timedelta(days=session_id, minutes=aid),
                         chapters=tuple(chapters))

def _chapter(name, attempted, correct, subject="Matemática"):
    return {"subject": subject, "chapter": name, "attempted": attempted, "correct": correct}


def test_weak_chapter_ranked_first():
    # denominadores distintos por intento: se promedia la precisión de cada intento
    fracciones = [(5, 2), (10, 4), (2, 1), (10, 3), (10, 4)]   # 40, 40, 50, 30, 40
    decimales = [(1, 1), (10, 8), (10, 9), (10, 9), (10, 9)]   # 100, 80, 90, 90, 90
    rows = [
        _attempt(i, i, f"s{i}", 65, [_chapter("Fracciones", *f), _chapter("Decimales", *d)])
        for i, (f, d) in enumerate(zip(fracciones, decimales), start=1)
    ]
    weak = aggregator.weak_chapters(rows)
    assert [w["chapter"] for w in weak] == ["Fracciones", "Decimales"]
    assert weak[0]["accuracy"] == 40
    assert weak[0]["totalAttempts"] == 5
    assert weak[1]["accuracy"] == 90

def test_chapter_accuracy_is_mean_of_attempts():
    rows = [
        _attempt(1, 1, "a", 10, [_chapter("A", 1, 1)]),
        _attempt(2, 1, "b", 0, [_chapter("A", 9, 0)]),
        _attempt(3, 1, "c", 0, [_chapter("B", 4, 4)]),
        _attempt(4, 1, "d", 0, [_chapter("B", 0, 0)]),   # capítulo saltado entero: 0%
    ]
    stats = {r["chapter"]: r for r in aggregator.chapter_stats(rows)}
    assert stats["A"]["accuracy"] == 50
    assert stats["B"]["accuracy"] == 50
    assert stats["B"]["totalAttempts"] == 2

def test_weak_chapters_need_minimum_attempts():
    rows = [_attempt(1, 1, "a", 10, [_chapter("Raro", 4, 0)])]
    assert aggregator.weak_chapters(rows, min_attempts=3) == []
    assert aggregator.weak_chapters(rows, min_attempts=1)[0]["chapter"] == "Raro"

def test_student_trend_improving():
    t = aggregator.classify_trend([50, 55, 90], tolerance=5)
    assert t["rollingAverage"] == 52.5
    assert t["direction"] == "improving"
    assert t["delta"] == 37.5

def test_trend_tolerance_band():
    assert aggregator.classify_trend([70, 70, 74], tolerance=5)["direction"] == "stable"
    assert aggregator.classify_trend([70, 70, 74], tolerance=2)["direction"] == "improving"
    assert aggregator.classify_trend([80, 80, 60], tolerance=5)["direction"] == "declining"
    assert aggregator.classify_trend([42])["direction"] == "stable"

def test_segmentation():
    rows = []
    aid = 0
    for session_id, scores in enumerate([(90, 40, 50), (95, 35, 55), (92, 30, 90)], start=1):
        for student, sc in zip(("top", "low", "riser"), scores):
            aid += 1
            rows.append(_attempt(aid, session_id, student, sc))
    seg = aggregator.segment_students(rows)
    assert [s["studentId"] for s in seg["topPerformers"]] == ["top"]
    assert [s["studentId"] for s in seg["atRiskStudents"]] == ["low"]
    riser = next(s for s in seg["students"] if s["studentId"] == "riser")
    assert riser["direction"] == "improving"
    assert riser["rollingAverage"] == 52.5

def test_trend_series_is_chronological_and_bounded():
    sessions_ = [_session(i) for i in range(1, 6)]
    rows = [_attempt(i, i, "a", 10 * i) for i in range(1, 6)]
    trend = aggregator.trend_series(reversed(sessions_), rows, limit=3)
    assert [t["sessionId"] for t in trend] == [3, 4, 5]
    assert [t["avgScore"] for t in trend] == [30, 40, 50]
    assert trend[-1]["participationRate"] == 25

def test_snapshot_is_order_independent():
    sessions_ = [_session(i) for i in range(1, 5)]
    rows = []
    aid = 0
    for sid in range(1, 5):
        for student in ("a", "b", "c"):
            aid += 1
            rows.append(_attempt(aid, sid, student, (aid * 37) % 100,
                                 [_chapter("X", 4, aid % 5), _chapter("Y", 4, (aid + 2) % 5)]))
    base = aggregator.build_snapshot("teacher", sessions_, rows)
    for seed in range(3):
        shuffled_rows = rows[:]
        shuffled_sessions = sessions_[:]
        random.Random(seed).shuffle(shuffled_rows)
        random.Random(seed).shuffle(shuffled_sessions)
        assert aggregator.build_snapshot("teacher", shuffled_sessions, shuffled_rows) == base

def test_insights_templates():
    sessions_ = [_session(1, roster=4), _session(2, roster=4), _session(3, roster=4)]
    rows = [
        _attempt(1, 1, "a", 80, [_chapter("Fracciones", 4, 1)]),
        _attempt(2, 1, "b", 80, [_chapter("Fracciones", 4, 1)]),
        _attempt(3, 1, "c", 80, [_chapter("Fracciones", 4, 1)]),
        _attempt(4, 2, "a", 80),
        _attempt(5, 2, "b", 80),
        _attempt(6, 2, "c", 80),
        _attempt(7, 3, "a", 40),
    ]
    snap = aggregator.build_snapshot("teacher", sessions_, rows)
    text = " | ".join(snap["insights"])
    assert "«Fracciones»" in text
    assert "La participación cayó al 25%" in text
    assert "El promedio bajó a 40%" in text
    assert snap["latestTestSnapshot"]["participated"] == 1

def test_no_data_insight():
    snap = aggregator.build_snapshot("teacher", [], [])
    assert snap["insights"] == [aggregator.INSIGHT_TEMPLATES["no_data"]]
    assert snap["latestTestSnapshot"] is None

def test_tenant_scope_adds_tiles_and_teacher_overview():
    sessions_ = [_session(1, teacher="t1"), _session(2, teacher="t2", subject="Ciencias")]
    rows = [_attempt(1, 1, "a", 70), _attempt(2, 2, "b", 90)]
    snap = aggregator.build_snapshot("tenant", sessions_, rows)
    assert [t["subject"] for t in snap["subjectTiles"]] == ["Ciencias", "Matemática"]
    assert {t["teacherId"]: t["avgScore"] for t in snap["teacherOverview"]} == {"t1": 70, "t2": 90}
    assert "subjectTiles" not in aggregator.build_snapshot("teacher", sessions_, rows)

def test_cache_key_tracks_attempt_set():
    rows = [_attempt(1, 1, "a", 70)]
    k1 = aggregator.cache_key("teacher", {}, rows)
    assert k1 == aggregator.cache_key("teacher", {}, list(reversed(rows)))
    assert k1 != aggregator.cache_key("teacher", {}, rows + [_attempt(2, 1, "b", 10)])
    assert k1 != aggregator.cache_key("tenant", {}, rows)

def test_class_analytics_from_db(db, clock):
    for offset, correct in ((0, 5), (1, 9)):
        s = sessions.create_session(db, make_paper(10), "aula-1", created_by=TEACHER, roster=["ana", "beto"])
        sessions.activate(db, s.id, 30, clock=clock)
        a, _ = attempts.get_or_create_attempt(db, s.id, "ana", clock=clock)
        answers = {f"q{i}": correct_for(i) for i in range(1, correct + 1)}
        gate.submit(db, a.id, answers, "submitted", clock=clock)
        sessions.force_complete(db, s.id, clock=clock)
        clock.advance(days=1)

    snap = analytics.class_analytics(db, teacher_id=TEACHER)
    assert [t["avgScore"] for t in snap["classTrend"]] == [50, 90]
    assert snap["latestTestSnapshot"]["participationRate"] == 50
    assert analytics.class_analytics(db, teacher_id="otro")["classTrend"] == []

    me = analytics.student_analytics(db, "ana")
    assert me["testsTaken"] == 2
    assert me["overallAverage"] == 70
    assert me["direction"] == "improving"
    assert [t["score"] for t in me["trend"]] == [50, 90]
