"""
Congelado del question paper al asignarlo a un aula.

El snapshot es una copia profunda: editar el banco de preguntas después
no cambia una sesión ya asignada. No valida contenido (eso es del autor);
sólo normaliza la forma y garantiza ids únicos por pregunta.
"""
import copy
from typing import Any, Dict, List

QUESTION_TYPES = ("objective", "subjective")

def _question_type(q: Dict[str, Any]) -> str:
    t = str(q.get("type") or "").strip().lower()
    if t in QUESTION_TYPES:
        return t
    # sin tipo explícito: con opciones es objetiva, sin opciones es de texto libre
    return "objective" if q.get("options") else "subjective"

def freeze_paper(paper: Dict[str, Any]) -> Dict[str, Any]:
    raw = copy.deepcopy(paper or {})
    questions: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for i, q in enumerate(raw.get("questions") or []):
        q = dict(q or {})
        qid = str(q.get("id") or q.get("_id") or f"q{i + 1}")
        if qid in seen:
            qid = f"{qid}-{i + 1}"
        seen.add(qid)
        questions.append({
            "id": qid,
            "text": str(q.get("text") or ""),
            "options": [str(o) for o in (q.get("options") or [])],
            "correctIndex": q.get("correctIndex", q.get("correct_index")),
            "subject": q.get("subject") or raw.get("subject"),
            "chapter": q.get("chapter"),
            "difficulty": q.get("difficulty"),
            "type": _question_type(q),
            "image": q.get("image"),
        })
    return {
        "paperId": raw.get("paperId") or raw.get("id") or raw.get("_id"),
        "title": raw.get("title") or "Prueba",
        "subject": raw.get("subject"),
        "questions": questions,
    }

def student_view(snapshot: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Preguntas sin respuestas correctas, en el orden del snapshot."""
    return [
        {
            "id": q["id"],
            "index": i,
            "text": q.get("text"),
            "options": q.get("options") or [],
            "type": q.get("type"),
            "image": q.get("image"),
        }
        for i, q in enumerate(snapshot.get("questions") or [])
    ]
