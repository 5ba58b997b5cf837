import os
from dotenv import load_dotenv

load_dotenv()

def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default

def _float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default

# === Base de datos / auth ===
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./edutest.db")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# === Deadline enforcer ===
ENFORCER_ENABLED = os.getenv("ENFORCER_ENABLED", "1") == "1"
ENFORCER_INTERVAL_SEC = _float("ENFORCER_INTERVAL_SEC", 15.0)

# === Sesiones ===
MIN_DURATION_MINUTES = _int("MIN_DURATION_MINUTES", 1)
MAX_DURATION_MINUTES = _int("MAX_DURATION_MINUTES", 600)
STATUS_RECENT_LIMIT = _int("STATUS_RECENT_LIMIT", 10)

# === Scoring ===
MISTAKES_PER_CHAPTER = _int("MISTAKES_PER_CHAPTER", 3)
MISTAKES_MAX_TOTAL = _int("MISTAKES_MAX_TOTAL", 15)

# === Analytics ===
TREND_SESSIONS = _int("TREND_SESSIONS", 10)
ROLLING_WINDOW = _int("ROLLING_WINDOW", 5)
TREND_TOLERANCE = _float("TREND_TOLERANCE", 5.0)           # puntos de score, banda "stable"
WEAK_CHAPTER_MIN_ATTEMPTS = _int("WEAK_CHAPTER_MIN_ATTEMPTS", 3)
WEAK_CHAPTER_LIMIT = _int("WEAK_CHAPTER_LIMIT", 5)
WEAK_CHAPTER_ACCURACY_CEILING = _float("WEAK_CHAPTER_ACCURACY_CEILING", 100.0)
TOP_PERFORMER_MIN_SCORE = _float("TOP_PERFORMER_MIN_SCORE", 80.0)
AT_RISK_MAX_SCORE = _float("AT_RISK_MAX_SCORE", 50.0)
SEGMENT_LIMIT = _int("SEGMENT_LIMIT", 5)
PARTICIPATION_DROP_PCT = _float("PARTICIPATION_DROP_PCT", 20.0)

# === Banco de preguntas (servicio externo) ===
PAPER_BANK_URL = os.getenv("PAPER_BANK_URL", "").strip().rstrip("/")
PAPER_BANK_TOKEN = os.getenv("PAPER_BANK_TOKEN", "").strip()
PAPER_BANK_TIMEOUT = _int("PAPER_BANK_TIMEOUT", 20)

# === HTTP ===
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()] or ["http://localhost:4200"]
