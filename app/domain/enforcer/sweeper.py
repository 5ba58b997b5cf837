"""
Deadline Enforcer.

Barrido periódico (nunca disparado por el cliente):
  - sesiones active con now >= endsAt  -> completed + timeout forzado de intentos abiertos
  - sesiones ya terminales con intentos in_progress (caída a mitad de un barrido) -> se reanudan
Re-barrer una sesión ya cerrada no tiene efectos.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy import select, or_, and_, exists
from sqlalchemy.orm import Session

from app.core.clock import Clock
from app.domain.sessions.service import force_complete
from app.models.attempt import Attempt
from app.models.test_session import TestSession, TERMINAL_SESSION_STATUSES

log = logging.getLogger("enforcer")


@dataclass
class SweepReport:
    sessions: List[int] = field(default_factory=list)
    completed: int = 0
    forced: int = 0
    failed: int = 0
    errors: int = 0


def due_session_ids(db: Session, now) -> List[int]:
    open_attempts = exists().where(Attempt.session_id == TestSession.id, Attempt.status == "in_progress")
    return list(db.execute(
        select(TestSession.id)
        .where(or_(
            and_(TestSession.status == "active", TestSession.ends_at <= now),
            and_(TestSession.status.in_(TERMINAL_SESSION_STATUSES), open_attempts),
        ))
        .order_by(TestSession.ends_at, TestSession.id)
    ).scalars().all())

def sweep_expired_sessions(db: Session, *, clock: Clock) -> SweepReport:
    report = SweepReport()
    for session_id in due_session_ids(db, clock.now()):
        try:
            res = force_complete(db, session_id, clock=clock)
        except Exception:
            # una sesión rota no debe frenar el barrido del resto
            db.rollback()
            report.errors += 1
            log.exception("sweep: session %s failed", session_id)
            continue
        report.sessions.append(session_id)
        report.completed += int(res.transitioned)
        report.forced += res.forced
        report.failed += res.failed
    return report


class DeadlineEnforcer:
    """Hilo daemon que ejecuta `sweep_expired_sessions` cada `interval` segundos."""

    def __init__(self, session_factory: Callable[[], Session], clock: Clock, interval: float = 15.0):
        self.session_factory = session_factory
        self.clock = clock
        self.interval = max(0.05, float(interval))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> SweepReport:
        db = self.session_factory()
        try:
            report = sweep_expired_sessions(db, clock=self.clock)
        finally:
            db.close()
        if report.sessions or report.errors:
            log.info("sweep: sessions=%s completed=%d forced=%d failed=%d errors=%d",
                     report.sessions, report.completed, report.forced, report.failed, report.errors)
        return report

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                log.exception("sweep tick failed")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="deadline-enforcer", daemon=True)
        self._thread.start()
        log.info("deadline enforcer started (every %.1fs)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        log.info("deadline enforcer stopped")

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
