from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from sunrise.core.config import settings
from sunrise.db.session import get_db
from sunrise.models import User

logger = logging.getLogger("sunrise.auth")

# Hard guard: never allow the default secret in production-like envs
if settings.is_prod and settings.jwt_secret in {"supersecret", "changeme", "secret", "", None}:
    raise RuntimeError(
        "Insecure JWT_SECRET configured in production environment. "
        "Set a strong random secret via the JWT_SECRET env var."
    )

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def _http_401(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: Dict[str, Any]) -> str:
    to_encode = dict(data)
    to_encode.setdefault("type", "access")
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """
    Decode JWT using settings.jwt_secret/jwt_algorithm.
    Raises 401 on any error.
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _http_401("Invalid or expired token")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    payload = decode_jwt(token)

    token_type = payload.get("type", "access")
    if token_type != "access":
        raise _http_401("Invalid token type")

    email = payload.get("sub")
    if not email:
        raise _http_401("Invalid token payload")

    user = db.query(User).filter(User.email == str(email).strip().lower()).first()
    if not user:
        raise _http_401("User not found")

    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if (current_user.role or "").upper() != "ADMIN":
        logger.warning("admin_access_denied user_id=%s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN_ADMIN_ONLY", "message": "Admin access required."},
        )
    return current_user
