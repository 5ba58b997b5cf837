"""
Scoring Engine: función pura (intento + snapshot) -> ScoreResult.

- Objetivas: answers[qid] vs correctIndex. None -> skipped, igual -> correct, distinto -> wrong.
- Subjetivas: nunca se corrigen; si vienen respondidas cuentan en attempted y en pending_review.
- score = round(100 * correct / total)   (sobre TODAS las preguntas)
- accuracy = 100 * correct / attempted   (0 si attempted == 0)

Sin reloj, sin azar, sin I/O: mismo input -> mismo output.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from app.core.errors import ScoringError
from app.core.settings import MISTAKES_PER_CHAPTER, MISTAKES_MAX_TOTAL

NO_CHAPTER = "Sin capítulo"
NO_SUBJECT = "General"
NO_DIFFICULTY = "sin-dificultad"


@dataclass(frozen=True)
class ScoreResult:
    total_questions: int
    attempted_questions: int
    correct_answers: int
    wrong_answers: int
    skipped: int
    pending_review: int
    score: int
    accuracy: float
    total_time_taken: int
    avg_time_per_question: float
    question_results: List[Dict[str, Any]] = field(default_factory=list)
    breakdown: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    mistakes: List[Dict[str, Any]] = field(default_factory=list)

    def as_columns(self) -> Dict[str, Any]:
        return {
            "total_questions": self.total_questions,
            "attempted_questions": self.attempted_questions,
            "correct_answers": self.correct_answers,
            "wrong_answers": self.wrong_answers,
            "skipped": self.skipped,
            "pending_review": self.pending_review,
            "score": self.score,
            "accuracy": self.accuracy,
            "total_time_taken": self.total_time_taken,
            "avg_time_per_question": self.avg_time_per_question,
            "question_results": list(self.question_results),
            "breakdown": dict(self.breakdown),
            "mistakes": list(self.mistakes),
        }


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def pct(num: int, den: int) -> float:
    if not den:
        return 0.0
    return round(100.0 * num / den, 2)

def _is_index(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)

def _answered(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str):
        return bool(v.strip())
    return True

def _check_key(q: Mapping[str, Any]) -> int:
    ci = q.get("correctIndex")
    options = q.get("options") or []
    if not _is_index(ci) or ci < 0 or ci >= len(options):
        raise ScoringError(f"pregunta {q.get('id')}: correctIndex {ci!r} fuera de rango ({len(options)} opciones)")
    return ci

def _outcome(q: Mapping[str, Any], selected: Any) -> str:
    if q.get("type") == "subjective":
        return "pending_review" if _answered(selected) else "skipped"
    correct_index = _check_key(q)
    if not _answered(selected):
        return "skipped"
    return "correct" if _is_index(selected) and selected == correct_index else "wrong"


def _group(rows: List[Dict[str, Any]], keys: tuple) -> List[Dict[str, Any]]:
    buckets: Dict[tuple, Dict[str, Any]] = {}
    for r in rows:
        k = tuple(r[name] for name in keys)
        b = buckets.setdefault(k, {
            **{name: r[name] for name in keys},
            "total": 0, "attempted": 0, "correct": 0, "wrong": 0, "skipped": 0, "pendingReview": 0,
        })
        b["total"] += 1
        outcome = r["outcome"]
        if outcome != "skipped":
            b["attempted"] += 1
        if outcome == "pending_review":
            b["pendingReview"] += 1
        else:
            b[outcome] += 1
    out = []
    for k in sorted(buckets):
        b = buckets[k]
        b["accuracy"] = pct(b["correct"], b["attempted"])
        out.append(b)
    return out


def _mistake_patterns(rows: List[Dict[str, Any]], questions: List[Mapping[str, Any]],
                      per_chapter: int, max_total: int) -> List[Dict[str, Any]]:
    by_chapter: Dict[tuple, Dict[str, Any]] = {}
    for r, q in zip(rows, questions):
        if r["outcome"] != "wrong":
            continue
        key = (r["subject"], r["chapter"])
        g = by_chapter.setdefault(key, {"subject": key[0], "chapter": key[1], "count": 0, "examples": []})
        g["count"] += 1
        if len(g["examples"]) < per_chapter:
            options = q.get("options") or []
            sel = r["selectedIndex"]
            g["examples"].append({
                "questionId": r["questionId"],
                "text": q.get("text"),
                "difficulty": r["difficulty"],
                "selectedIndex": sel,
                "selectedOption": options[sel] if _is_index(sel) and 0 <= sel < len(options) else None,
                "correctIndex": q.get("correctIndex"),
                "correctOption": options[q["correctIndex"]],
            })
    groups = sorted(by_chapter.values(), key=lambda g: (-g["count"], g["subject"], g["chapter"]))
    # tope global de ejemplos para no inflar el payload
    budget = max_total
    for g in groups:
        g["examples"] = g["examples"][:max(0, budget)]
        budget -= len(g["examples"])
    return groups


def score(attempt: Any, paper_snapshot: Mapping[str, Any], *,
          mistakes_per_chapter: int = MISTAKES_PER_CHAPTER,
          mistakes_max_total: int = MISTAKES_MAX_TOTAL) -> ScoreResult:
    """
    `attempt` es cualquier objeto con `answers` y `total_time_taken`
    (el modelo ORM o un FrozenAttempt de la gate).
    Lanza ScoringError si el snapshot trae una clave de respuesta inválida.
    """
    answers: Mapping[str, Any] = getattr(attempt, "answers", None) or {}
    total_time = int(getattr(attempt, "total_time_taken", 0) or 0)
    questions = list(paper_snapshot.get("questions") or [])

    rows: List[Dict[str, Any]] = []
    for q in questions:
        qid = str(q.get("id"))
        selected = answers.get(qid)
        rows.append({
            "questionId": qid,
            "selectedIndex": selected,
            "outcome": _outcome(q, selected),
            "subject": q.get("subject") or NO_SUBJECT,
            "chapter": q.get("chapter") or NO_CHAPTER,
            "difficulty": q.get("difficulty") or NO_DIFFICULTY,
            "type": q.get("type") or "objective",
        })

    total = len(rows)
    correct = sum(1 for r in rows if r["outcome"] == "correct")
    wrong = sum(1 for r in rows if r["outcome"] == "wrong")
    skipped = sum(1 for r in rows if r["outcome"] == "skipped")
    pending = sum(1 for r in rows if r["outcome"] == "pending_review")
    attempted = total - skipped

    return ScoreResult(
        total_questions=total,
        attempted_questions=attempted,
        correct_answers=correct,
        wrong_answers=wrong,
        skipped=skipped,
        pending_review=pending,
        score=round_half_up(100.0 * correct / total) if total else 0,
        accuracy=pct(correct, attempted),
        total_time_taken=total_time,
        avg_time_per_question=round(total_time / attempted, 2) if attempted else 0.0,
        question_results=[
            {"questionId": r["questionId"], "selectedIndex": r["selectedIndex"], "outcome": r["outcome"]}
            for r in rows
        ],
        breakdown={
            "chapter": _group(rows, ("subject", "chapter")),
            "difficulty": _group(rows, ("difficulty",)),
            "type": _group(rows, ("type",)),
        },
        mistakes=_mistake_patterns(rows, questions, mistakes_per_chapter, mistakes_max_total),
    )
