"""
Admin login and session routes.

Login is rate limited per client (IP + user agent) before the body is read.
Sessions are stateless signed cookies; see AdminSessionAdapter.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from src.adapters.auth.crypto import AdminSessionAdapter, is_admin_password_valid
from src.api.deps import (
    Settings,
    get_admin_session_adapter,
    get_rate_limiter,
    get_rules,
    get_settings,
)
from src.app_shell.rate_limit import RateLimiter, get_client_identifier
from src.domain.sanitize import ensure_trimmed_string
from src.rules.models import Rules

logger = logging.getLogger(__name__)

router = APIRouter()


def get_forwarded_ip(request: Request) -> str | None:
    """Client IP as reported by the proxy, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


@router.post("/login")
async def admin_login(
    request: Request,
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
    limiter: RateLimiter = Depends(get_rate_limiter),
    sessions: AdminSessionAdapter = Depends(get_admin_session_adapter),
) -> Any:
    """Exchange the admin password for a session cookie."""
    client_id = get_client_identifier(get_forwarded_ip(request), request.headers.get("user-agent"))
    decision = limiter.check_and_increase_login_rate_limit(client_id)
    if not decision.allowed:
        logger.warning("Admin login rate limited until %s", decision.reset_at.isoformat())
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Too many login attempts",
                "retry_after": decision.reset_at.isoformat(),
            },
        )

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON body"},
        )
    if not isinstance(body, dict):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body"},
        )

    password = ensure_trimmed_string(body.get("password"), rules.admin.password_max_length)
    if not is_admin_password_valid(password, settings.admin_password):
        logger.warning("Rejected admin login (%d attempts left)", decision.remaining)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Invalid credentials"},
        )

    cookie = sessions.create_admin_session_cookie()
    response = JSONResponse(content={"success": True})
    response.set_cookie(
        key=cookie.name,
        value=cookie.value,
        max_age=cookie.max_age,
        path=cookie.path,
        httponly=cookie.http_only,
        secure=cookie.secure,
        samesite=cookie.same_site,  # type: ignore[arg-type]
    )
    logger.info("Admin session issued")
    return response


@router.get("/session")
def admin_session(
    request: Request,
    sessions: AdminSessionAdapter = Depends(get_admin_session_adapter),
) -> Any:
    """Report whether the caller holds a valid admin session."""
    if sessions.has_valid_admin_session_from_cookie(request.cookies.get(sessions.cookie_name)):
        return {"authenticated": True}
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"authenticated": False},
    )
