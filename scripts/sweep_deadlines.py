"""
Un barrido del Deadline Enforcer (para cron o para reanudar tras una caída).
Re-ejecutarlo sobre sesiones ya cerradas no tiene efectos.
"""
import sys
import logging
from pathlib import Path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path: sys.path.insert(0, str(ROOT))

from app.core.clock import SystemClock
from app.core.settings import LOG_LEVEL
from app.db import SessionLocal
from app.domain.enforcer.sweeper import sweep_expired_sessions

def main() -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    db = SessionLocal()
    try:
        report = sweep_expired_sessions(db, clock=SystemClock())
    finally:
        db.close()
    print(f"Sweep OK: sessions={report.sessions} completed={report.completed} "
          f"forced={report.forced} failed={report.failed} errors={report.errors}")
    return 1 if report.errors or report.failed else 0

if __name__ == "__main__":
    sys.exit(main())
