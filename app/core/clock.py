"""
Clock Authority: única fuente de "ahora" para el motor.

Todas las validaciones de deadline comparan contra `now()` del servidor;
los timestamps que reporte el cliente nunca se usan para autorizar.
"""
from __future__ import annotations
import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FrozenClock:
    """Reloj manual para tests y scripts de simulación."""

    def __init__(self, start: datetime | None = None):
        self._now = ensure_utc(start) if start else datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = ensure_utc(value)

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite devuelve datetimes sin tzinfo; los tratamos como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(deadline: datetime | None, now: datetime) -> int | None:
    if deadline is None:
        return None
    return max(0, int((ensure_utc(deadline) - now).total_seconds()))


clock: Clock = SystemClock()

def get_clock() -> Clock:
    """Dependency de FastAPI; los tests la sobreescriben con un FrozenClock."""
    return clock
