from datetime import datetime, timedelta, timezone
from jose import jwt

from app.core.settings import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES

ROLES = ("student", "teacher", "admin")

def create_access_token(subject: str, role: str = "student", expires_delta: timedelta | None = None) -> str:
    if role not in ROLES:
        raise ValueError(f"rol inválido: {role}")
    expires_delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(tz=timezone.utc) + expires_delta
    to_encode = {"sub": subject, "role": role, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def decode_access_token(token: str) -> dict:
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
