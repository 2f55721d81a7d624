"""Shared-password access gate.

Flow:
1. POST /auth/pass with the shared password
2. sha256(password) is compared in constant time to ACCESS_PASSWORD_HASH
3. On success an HS256 JWT is set as an httpOnly cookie (ACCESS_COOKIE_NAME)
4. Protected routes depend on require_session, which validates that cookie
"""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta

import structlog
from fastapi import HTTPException, Request, status
from jose import JWTError, jwt  # type: ignore[import-untyped]

from app.core.config import settings

logger = structlog.stdlib.get_logger(__name__)

_ALGORITHM = "HS256"
_SUBJECT = "shared-access"


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str) -> bool:
    expected = settings.access.access_password_hash.strip().lower()
    if not expected:
        return False
    return hmac.compare_digest(hash_password(password), expected)


def session_max_age_seconds() -> int:
    return settings.access.session_max_age_days * 24 * 60 * 60


def issue_session_token(now: datetime | None = None) -> str:
    issued = now or datetime.now(UTC)
    claims = {
        "sub": _SUBJECT,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=session_max_age_seconds())).timestamp()),
    }
    return jwt.encode(claims, settings.access.access_cookie_secret, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Validate signature and expiry. Raises JWTError when either fails."""
    return jwt.decode(token, settings.access.access_cookie_secret, algorithms=[_ALGORITHM])


def read_session(request: Request) -> dict | None:
    token = request.cookies.get(settings.access.access_cookie_name)
    if not token:
        return None
    try:
        return decode_session_token(token)
    except JWTError as exc:
        logger.info("session_cookie_rejected", error=str(exc))
        return None


async def require_session(request: Request) -> dict:
    """Dependency guarding every canvas and workflow route.

    In development with no password configured the gate is open.
    """
    if settings.app_env == "development" and not settings.access.access_password_hash:
        logger.debug("dev_auth_bypass")
        return {"sub": _SUBJECT, "dev_bypass": True}

    claims = read_session(request)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid access cookie",
        )
    return claims
