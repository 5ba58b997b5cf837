import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core import clock as clock_module
from app.core.errors import EngineError
from app.core.settings import CORS_ORIGINS, ENFORCER_ENABLED, ENFORCER_INTERVAL_SEC, LOG_LEVEL
from app.db import Base, SessionLocal, engine
from app.domain.enforcer.sweeper import DeadlineEnforcer

# modelos registrados en Base antes de create_all
from app.models import attempt, score_card, test_session  # noqa: F401

from app.routers import analytics as analytics_router
from app.routers import attempts as attempts_router
from app.routers import sessions as sessions_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("main")

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    enforcer = None
    if ENFORCER_ENABLED:
        enforcer = DeadlineEnforcer(SessionLocal, clock_module.clock, interval=ENFORCER_INTERVAL_SEC)
        enforcer.start()
    app.state.enforcer = enforcer
    yield
    if enforcer:
        enforcer.stop()


app = FastAPI(title="EduTest API", lifespan=lifespan)

# ==== CORS ====
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==== Errores de dominio ====
# "llegaste tarde" (410/409) vs "algo se rompió" (5xx) se distinguen por `code`
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

# ==== Routers ====
app.include_router(sessions_router.router)
app.include_router(attempts_router.router)
app.include_router(analytics_router.router)

@app.get("/health")
def health():
    enforcer = getattr(app.state, "enforcer", None)
    return {"status": "ok", "enforcer": bool(enforcer and enforcer.running)}
