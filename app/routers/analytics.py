from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.deps import Identity, get_db, require_admin, require_staff
from app.domain.analytics import service as analytics

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/teacher")
def teacher_analytics(classroomId: str | None = None, subject: str | None = None,
                      db: Session = Depends(get_db), me: Identity = Depends(require_staff)):
    """Snapshot del docente autenticado (sus pruebas, opcionalmente por aula/materia)."""
    return analytics.class_analytics(db, teacher_id=me.sub, scope="teacher",
                                     classroom_id=classroomId, subject=subject)

@router.get("/admin")
def admin_analytics(teacherId: str | None = None, classroomId: str | None = None,
                    subject: str | None = None,
                    db: Session = Depends(get_db), me: Identity = Depends(require_admin)):
    """Vista de toda la institución: agrega subject tiles y overview por docente."""
    return analytics.class_analytics(db, teacher_id=teacherId, scope="tenant",
                                     classroom_id=classroomId, subject=subject)
