"""
Analytics Aggregator: funciones puras sobre ScoreCards ya calculados.

No tocan la DB ni mutan su input. Toda salida se ordena con claves totales
(valor, luego ids) para que el resultado no dependa del orden de llegada.
"""
from __future__ import annotations
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.core import settings
from app.domain.scoring.engine import pct

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class SessionFacts:
    session_id: int
    title: str
    subject: Optional[str]
    classroom_id: str
    created_by: str
    roster_size: int
    started_at: Optional[datetime]


@dataclass(frozen=True)
class ScoredAttempt:
    attempt_id: int
    session_id: int
    student_id: str
    score: int
    accuracy: float
    submitted_at: Optional[datetime]
    chapters: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)


INSIGHT_TEMPLATES = {
    "no_data": "Aún no hay pruebas calificadas para analizar.",
    "weak_chapter": "El capítulo «{chapter}» ({subject}) es el más débil: {accuracy}% de precisión en {attempts} intentos.",
    "participation_drop": "La participación cayó al {latest}% en «{title}» (promedio previo {previous}%).",
    "score_drop": "El promedio bajó a {latest}% en «{title}» ({delta} puntos frente al promedio previo).",
    "score_rise": "El promedio subió a {latest}% en «{title}» (+{delta} puntos frente al promedio previo).",
    "at_risk": "{count} estudiante(s) en riesgo: promedio bajo o tendencia a la baja.",
    "top_performers": "{count} estudiante(s) destacan con un promedio de {threshold}% o más.",
    "student_improving": "¡Vas mejorando! Tu última nota ({last}%) supera tu promedio reciente ({average}%).",
    "student_declining": "Tu última nota ({last}%) quedó por debajo de tu promedio reciente ({average}%).",
    "student_weak_chapter": "Repasa «{chapter}»: {accuracy}% de precisión hasta ahora.",
}


def _num(x: float) -> float | int:
    r = round(float(x), 1)
    return int(r) if r == int(r) else r

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0

def _when(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return _EPOCH
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _session_key(s: SessionFacts):
    return (_when(s.started_at), s.session_id)

def _attempt_key(a: ScoredAttempt):
    return (_when(a.submitted_at), a.session_id, a.attempt_id)


# ---------------------------------------------------------------
# (a) Tendencia por sesión
# ---------------------------------------------------------------

def trend_series(sessions: Iterable[SessionFacts], attempts: Iterable[ScoredAttempt],
                 limit: int = settings.TREND_SESSIONS) -> List[Dict[str, Any]]:
    """Últimas `limit` sesiones con intentos calificados, de la más vieja a la más nueva."""
    by_session: Dict[int, List[int]] = {}
    for a in attempts:
        by_session.setdefault(a.session_id, []).append(a.score)

    rows = []
    for s in sorted(sessions, key=_session_key):
        scores = by_session.get(s.session_id)
        if not scores:
            continue
        rows.append({
            "sessionId": s.session_id,
            "testName": s.title,
            "subject": s.subject,
            "startedAt": s.started_at,
            "avgScore": _num(_mean(scores)),
            "participants": len(scores),
            "totalStudents": s.roster_size,
            "participationRate": _num(100.0 * len(scores) / s.roster_size) if s.roster_size else 0,
        })
    return rows[-limit:] if limit > 0 else rows


# ---------------------------------------------------------------
# (b) Capítulos débiles
# ---------------------------------------------------------------

def chapter_stats(attempts: Iterable[ScoredAttempt]) -> List[Dict[str, Any]]:
    """
    Agrupa por (subject, chapter): promedio de la precisión de cada intento en ese
    capítulo (0 si no respondió ninguna) y cuántos intentos lo incluyeron.
    """
    acc: Dict[Tuple[str, str], List[float]] = {}
    for a in attempts:
        for ch in a.chapters:
            key = (str(ch.get("subject")), str(ch.get("chapter")))
            acc.setdefault(key, []).append(pct(int(ch.get("correct") or 0), int(ch.get("attempted") or 0)))
    out = []
    for (subject, chapter), values in acc.items():
        out.append({
            "subject": subject,
            "chapter": chapter,
            "accuracy": _num(_mean(sorted(values))),
            "totalAttempts": len(values),
        })
    return out

def weak_chapters(attempts: Iterable[ScoredAttempt], *,
                  min_attempts: int = settings.WEAK_CHAPTER_MIN_ATTEMPTS,
                  limit: int = settings.WEAK_CHAPTER_LIMIT,
                  ceiling: float = settings.WEAK_CHAPTER_ACCURACY_CEILING) -> List[Dict[str, Any]]:
    rows = [
        r for r in chapter_stats(attempts)
        if r["totalAttempts"] >= min_attempts and r["accuracy"] < ceiling
    ]
    rows.sort(key=lambda r: (r["accuracy"], r["subject"], r["chapter"]))
    return rows[:limit]

def strong_chapters(attempts: Iterable[ScoredAttempt], *, min_attempts: int = 1,
                    limit: int = settings.WEAK_CHAPTER_LIMIT, floor: float = 75.0) -> List[Dict[str, Any]]:
    rows = [r for r in chapter_stats(attempts) if r["totalAttempts"] >= min_attempts and r["accuracy"] >= floor]
    rows.sort(key=lambda r: (-r["accuracy"], r["subject"], r["chapter"]))
    return rows[:limit]


# ---------------------------------------------------------------
# (c) Segmentación de estudiantes
# ---------------------------------------------------------------

def classify_trend(scores: Sequence[float], *, window: int = settings.ROLLING_WINDOW,
                   tolerance: float = settings.TREND_TOLERANCE) -> Dict[str, Any]:
    """
    `scores` en orden cronológico. Compara el último score contra el promedio
    móvil de los anteriores dentro de la ventana; |delta| <= tolerance -> stable.
    """
    recent = list(scores)[-max(1, window):]
    if not recent:
        return {"rollingAverage": 0, "lastScore": 0, "delta": 0, "direction": "stable", "avgScore": 0}
    last = float(recent[-1])
    prior = recent[:-1]
    rolling = _mean(prior) if prior else last
    delta = last - rolling
    if delta > tolerance:
        direction = "improving"
    elif delta < -tolerance:
        direction = "declining"
    else:
        direction = "stable"
    return {
        "rollingAverage": _num(rolling),
        "lastScore": _num(last),
        "delta": _num(delta),
        "direction": direction,
        "avgScore": _num(_mean(recent)),
    }

def segment_students(attempts: Iterable[ScoredAttempt], *,
                     window: int = settings.ROLLING_WINDOW,
                     tolerance: float = settings.TREND_TOLERANCE,
                     top_min: float = settings.TOP_PERFORMER_MIN_SCORE,
                     at_risk_max: float = settings.AT_RISK_MAX_SCORE,
                     limit: int = settings.SEGMENT_LIMIT) -> Dict[str, List[Dict[str, Any]]]:
    per_student: Dict[str, List[ScoredAttempt]] = {}
    for a in attempts:
        per_student.setdefault(a.student_id, []).append(a)

    students = []
    for student_id in sorted(per_student):
        history = sorted(per_student[student_id], key=_attempt_key)
        t = classify_trend([a.score for a in history], window=window, tolerance=tolerance)
        students.append({
            "studentId": student_id,
            "attempts": len(history),
            "avgScore": t["avgScore"],
            "lastScore": t["lastScore"],
            "rollingAverage": t["rollingAverage"],
            "trend": t["delta"],
            "direction": t["direction"],
        })

    top = [s for s in students if s["avgScore"] >= top_min and s["direction"] != "declining"]
    top.sort(key=lambda s: (-s["avgScore"], s["studentId"]))
    risk = [s for s in students if s["avgScore"] < at_risk_max or s["direction"] == "declining"]
    risk.sort(key=lambda s: (s["avgScore"], s["trend"], s["studentId"]))
    return {"topPerformers": top[:limit], "atRiskStudents": risk[:limit], "students": students}


# ---------------------------------------------------------------
# (d) Insights
# ---------------------------------------------------------------

def render_insight(kind: str, **values) -> str:
    return INSIGHT_TEMPLATES[kind].format(**values)

def class_insights(trend: List[Dict[str, Any]], weak: List[Dict[str, Any]],
                   segmentation: Dict[str, List[Dict[str, Any]]], *,
                   tolerance: float = settings.TREND_TOLERANCE,
                   participation_drop: float = settings.PARTICIPATION_DROP_PCT,
                   top_min: float = settings.TOP_PERFORMER_MIN_SCORE) -> List[str]:
    if not trend:
        return [render_insight("no_data")]
    out: List[str] = []
    if weak:
        w = weak[0]
        out.append(render_insight("weak_chapter", chapter=w["chapter"], subject=w["subject"],
                                  accuracy=w["accuracy"], attempts=w["totalAttempts"]))

    latest, previous = trend[-1], trend[:-1]
    if previous:
        prev_rate = _mean([t["participationRate"] for t in previous])
        if prev_rate - latest["participationRate"] >= participation_drop:
            out.append(render_insight("participation_drop", latest=latest["participationRate"],
                                      title=latest["testName"], previous=_num(prev_rate)))
        prev_avg = _mean([t["avgScore"] for t in previous])
        delta = latest["avgScore"] - prev_avg
        if delta < -tolerance:
            out.append(render_insight("score_drop", latest=latest["avgScore"], title=latest["testName"],
                                      delta=_num(delta)))
        elif delta > tolerance:
            out.append(render_insight("score_rise", latest=latest["avgScore"], title=latest["testName"],
                                      delta=_num(delta)))

    if segmentation.get("atRiskStudents"):
        out.append(render_insight("at_risk", count=len(segmentation["atRiskStudents"])))
    if segmentation.get("topPerformers"):
        out.append(render_insight("top_performers", count=len(segmentation["topPerformers"]),
                                  threshold=_num(top_min)))
    return out


# ---------------------------------------------------------------
# Vistas agregadas (tenant)
# ---------------------------------------------------------------

def subject_tiles(sessions: Iterable[SessionFacts], attempts: Iterable[ScoredAttempt], *,
                  recent: int = 5, tolerance: float = settings.TREND_TOLERANCE) -> List[Dict[str, Any]]:
    sessions = list(sessions)
    trend = trend_series(sessions, attempts, limit=0)
    by_subject: Dict[str, List[Dict[str, Any]]] = {}
    for row in trend:
        by_subject.setdefault(row["subject"] or "General", []).append(row)
    tiles = []
    for subject in sorted(by_subject):
        rows = by_subject[subject]
        scores = [r["avgScore"] for r in rows]
        t = classify_trend(scores, tolerance=tolerance)
        tiles.append({
            "subject": subject,
            "tests": len(rows),
            "avgScore": _num(_mean(scores)),
            "trend": t["direction"],
            "recentScores": scores[-recent:],
        })
    return tiles

def teacher_overview(sessions: Iterable[SessionFacts], attempts: Iterable[ScoredAttempt], *,
                     tolerance: float = settings.TREND_TOLERANCE) -> List[Dict[str, Any]]:
    sessions = list(sessions)
    attempts = list(attempts)
    teachers = sorted({s.created_by for s in sessions})
    out = []
    for teacher in teachers:
        own = [s for s in sessions if s.created_by == teacher]
        own_ids = {s.session_id for s in own}
        trend = trend_series(own, [a for a in attempts if a.session_id in own_ids], limit=0)
        scores = [r["avgScore"] for r in trend]
        started = [s.started_at for s in own if s.started_at]
        out.append({
            "teacherId": teacher,
            "testsConducted": len(trend),
            "avgScore": _num(_mean(scores)),
            "trend": classify_trend(scores, tolerance=tolerance)["direction"],
            "lastTestDate": max(started, key=_when) if started else None,
        })
    return out

def latest_test_snapshot(trend: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not trend:
        return None
    t = trend[-1]
    return {
        "sessionId": t["sessionId"],
        "testName": t["testName"],
        "avgScore": t["avgScore"],
        "participationRate": t["participationRate"],
        "participated": t["participants"],
        "totalStudents": t["totalStudents"],
    }


# ---------------------------------------------------------------
# Snapshot completo
# ---------------------------------------------------------------

def cache_key(scope: str, filters: Dict[str, Any], attempts: Sequence[ScoredAttempt]) -> str:
    """Identidad del snapshot: cambia sólo si cambian filtros o el conjunto de intentos calificados."""
    ids = ",".join(str(i) for i in sorted(a.attempt_id for a in attempts))
    raw = json.dumps({"scope": scope, "filters": filters, "attempts": ids}, sort_keys=True, default=str)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()

def build_snapshot(scope: str, sessions: Iterable[SessionFacts], attempts: Iterable[ScoredAttempt], *,
                   filters: Optional[Dict[str, Any]] = None,
                   trend_limit: int = settings.TREND_SESSIONS,
                   tolerance: float = settings.TREND_TOLERANCE) -> Dict[str, Any]:
    sessions = sorted(sessions, key=_session_key)
    attempts = sorted(attempts, key=_attempt_key)
    trend = trend_series(sessions, attempts, limit=trend_limit)
    weak = weak_chapters(attempts)
    segmentation = segment_students(attempts, tolerance=tolerance)

    snapshot: Dict[str, Any] = {
        "scope": scope,
        "cacheKey": cache_key(scope, filters or {}, attempts),
        "latestTestSnapshot": latest_test_snapshot(trend),
        "classTrend": trend,
        "weakChapters": weak,
        "studentSegmentation": {
            "topPerformers": segmentation["topPerformers"],
            "atRiskStudents": segmentation["atRiskStudents"],
        },
        "insights": class_insights(trend, weak, segmentation, tolerance=tolerance),
    }
    if scope == "tenant":
        snapshot["subjectTiles"] = subject_tiles(sessions, attempts, tolerance=tolerance)
        snapshot["teacherOverview"] = teacher_overview(sessions, attempts, tolerance=tolerance)
    return snapshot

def student_dashboard(student_id: str, sessions: Iterable[SessionFacts], attempts: Iterable[ScoredAttempt], *,
                      trend_limit: int = settings.TREND_SESSIONS,
                      window: int = settings.ROLLING_WINDOW,
                      tolerance: float = settings.TREND_TOLERANCE) -> Dict[str, Any]:
    titles = {s.session_id: s.title for s in sessions}
    mine = sorted((a for a in attempts if a.student_id == student_id), key=_attempt_key)
    scores = [a.score for a in mine]
    t = classify_trend(scores, window=window, tolerance=tolerance)
    weak = weak_chapters(mine, min_attempts=1)
    strong = strong_chapters(mine)

    insights: List[str] = []
    if len(mine) > 1 and t["direction"] == "improving":
        insights.append(render_insight("student_improving", last=t["lastScore"], average=t["rollingAverage"]))
    elif len(mine) > 1 and t["direction"] == "declining":
        insights.append(render_insight("student_declining", last=t["lastScore"], average=t["rollingAverage"]))
    if weak:
        insights.append(render_insight("student_weak_chapter", chapter=weak[0]["chapter"], accuracy=weak[0]["accuracy"]))

    return {
        "studentId": student_id,
        "testsTaken": len(mine),
        "overallAverage": _num(_mean(scores)),
        "trend": [
            {"sessionId": a.session_id, "testName": titles.get(a.session_id), "score": a.score,
             "accuracy": a.accuracy, "submittedAt": a.submitted_at}
            for a in mine[-trend_limit:]
        ],
        "direction": t["direction"],
        "rollingAverage": t["rollingAverage"],
        "weakChapters": weak,
        "strongChapters": strong,
        "insights": insights,
    }
