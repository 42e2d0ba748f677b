from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from tablekeeper.core.config import settings

ALGORITHM = "HS256"
STAFF_ROLES = ("owner", "manager", "host", "server")


def create_access_token(subject: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a staff token. Used by tests and operational tooling; the login flow lives elsewhere."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=8))
    to_encode = {"exp": expire, "sub": str(subject), "role": role}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Returns the claims or None if token is invalid/expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def is_staff_claims(claims: Optional[dict]) -> bool:
    return bool(claims) and claims.get("role") in STAFF_ROLES and bool(claims.get("sub"))
