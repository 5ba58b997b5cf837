"""
Transiciones atómicas de estado (compare-and-set).

Un único UPDATE condicionado por el estado esperado: si otra transacción ya
movió la fila, rowcount == 0 y el llamador sabe que perdió la carrera.
No hay lectura previa + escritura, así que no hay ventana de carrera.
"""
from typing import Iterable
from sqlalchemy import update
from sqlalchemy.orm import Session


def compare_and_set(db: Session, model, row_id: int, expected: str | Iterable[str], values: dict,
                    *, version: int | None = None) -> bool:
    allowed = [expected] if isinstance(expected, str) else list(expected)
    stmt = (
        update(model)
        .where(model.id == row_id, model.status.in_(allowed))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if version is not None:
        stmt = stmt.where(model.version == version)
    res = db.execute(stmt)
    return res.rowcount == 1
