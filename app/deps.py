from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.clock import get_clock  # noqa: F401  (re-export para los routers)
from app.db import get_db  # noqa: F401
from app.security import ROLES, decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Usuario autenticado por el proveedor externo; aquí sólo se confía en el token."""
    sub: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in ("teacher", "admin")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> Identity:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciales inválidas",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if creds is None:
        raise cred_exc
    try:
        payload = decode_access_token(creds.credentials)
    except JWTError:
        raise cred_exc
    sub: str | None = payload.get("sub")
    role: str | None = payload.get("role")
    if not sub or role not in ROLES:
        raise cred_exc
    return Identity(sub=str(sub), role=role)

def require_student(me: Identity = Depends(get_current_user)) -> Identity:
    if me.role != "student":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Sólo estudiantes")
    return me

def require_staff(me: Identity = Depends(get_current_user)) -> Identity:
    if not me.is_staff:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Sólo docentes o administradores")
    return me

def require_admin(me: Identity = Depends(get_current_user)) -> Identity:
    if not me.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Sólo administradores")
    return me
