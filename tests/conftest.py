import os
import tempfile

# antes de importar app.*: DB temporal y enforcer apagado (los tests barren a mano)
_TMP_DIR = tempfile.mkdtemp(prefix="edutest-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["ENFORCER_ENABLED"] = "0"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from app.core.clock import FrozenClock, get_clock
from app.db import Base, SessionLocal, engine
from app.domain.sessions import service as sessions
from app.main import app
from app.security import create_access_token
from app.services.paper_bank import get_paper_bank

TEACHER = "teacher-1"
ROSTER = ["ana", "beto", "carla"]


def make_paper(n: int = 10, chapter: str = "Fracciones", subject: str = "Matemática", **extra) -> dict:
    """Cuestionario objetivo: la respuesta correcta de q{i} es i % 4."""
    return {
        "id": "paper-1",
        "title": "Prueba de fracciones",
        "subject": subject,
        "questions": [
            {
                "id": f"q{i}",
                "text": f"Pregunta {i}",
                "options": ["A", "B", "C", "D"],
                "correctIndex": i % 4,
                "chapter": chapter,
                "subject": subject,
                "difficulty": "easy" if i % 2 else "hard",
            }
            for i in range(1, n + 1)
        ],
        **extra,
    }

def correct_for(i: int) -> int:
    return i % 4

def wrong_for(i: int) -> int:
    return (i + 1) % 4


@pytest.fixture
def clock():
    return FrozenClock()

@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def session_factory(db):
    """Para tests de concurrencia: cada hilo abre su propia sesión de DB."""
    return SessionLocal

@pytest.fixture
def active_session(db, clock):
    s = sessions.create_session(db, make_paper(), "aula-1", created_by=TEACHER, roster=ROSTER)
    return sessions.activate(db, s.id, 30, clock=clock)


class FakePaperBank:
    def __init__(self, papers: dict | None = None):
        self.papers = papers or {}
        self.calls: list[str] = []

    def fetch_paper(self, paper_id: str) -> dict:
        from app.core.errors import NotFoundError
        self.calls.append(paper_id)
        if paper_id not in self.papers:
            raise NotFoundError("Cuestionario no encontrado")
        return self.papers[paper_id]

@pytest.fixture
def paper_bank():
    return FakePaperBank({"bank-7": make_paper(5, chapter="Porcentajes")})

@pytest.fixture
def client(db, clock, paper_bank):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_paper_bank] = lambda: paper_bank
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

def auth(sub: str, role: str = "student") -> dict:
    return {"Authorization": f"Bearer {create_access_token(sub, role)}"}

@pytest.fixture
def teacher_headers():
    return auth(TEACHER, "teacher")

@pytest.fixture
def admin_headers():
    return auth("admin-1", "admin")
