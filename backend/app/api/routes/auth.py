"""Shared-password gate endpoints."""

import structlog
from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel

from app.core.auth import (
    issue_session_token,
    read_session,
    session_max_age_seconds,
    verify_password,
)
from app.core.config import settings

router = APIRouter()
logger = structlog.stdlib.get_logger(__name__)


class PassRequest(BaseModel):
    password: str


@router.post("/pass")
async def pass_gate(body: PassRequest, response: Response):
    if not settings.access.access_password_hash:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )
    if not verify_password(body.password):
        logger.info("access_denied")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )

    response.set_cookie(
        key=settings.access.access_cookie_name,
        value=issue_session_token(),
        max_age=session_max_age_seconds(),
        httponly=True,
        secure=settings.app_env != "development",
        samesite="lax",
        path="/",
    )
    return {"success": True}


@router.get("/status")
async def session_status(request: Request):
    claims = read_session(request)
    if claims is None:
        return {"authenticated": False}
    return {"authenticated": True, "expires_at": claims.get("exp")}
