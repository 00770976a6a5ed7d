"""
Login endpoints: OAuth2 authorization-code exchange with Microsoft.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from services.calendar_analytics.core.clients.graph import GraphAPIClient
from services.calendar_analytics.core.oauth import (
    build_authorization_url,
    exchange_code_for_token,
    get_access_token,
)
from services.calendar_analytics.settings import get_settings
from services.common.http_errors import AuthError, ErrorCode, ValidationError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

STATE_COOKIE_NAME = "oauth_state"


@router.get("/login")
async def login() -> RedirectResponse:
    """Redirect the browser to the Microsoft sign-in page."""
    settings = get_settings()
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(build_authorization_url(state=state), status_code=302)
    response.set_cookie(
        STATE_COOKIE_NAME,
        state,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=600,
    )
    return response


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
) -> RedirectResponse:
    """
    Complete the sign-in: exchange the code and store the access token.

    The token is set as an HTTP-only cookie and the browser is sent back to
    the frontend.
    """
    if error:
        raise AuthError(
            error_description or "Sign-in was not completed",
            code=ErrorCode.AUTH_FAILED,
            details={"error": error},
        )
    if not code:
        raise ValidationError("Authorization code is required", field="code")

    expected_state = request.cookies.get(STATE_COOKIE_NAME)
    if (
        not expected_state
        or not state
        or not secrets.compare_digest(state.encode(), expected_state.encode())
    ):
        logger.warning(
            "Rejected OAuth callback with missing or mismatched state",
            state_cookie_present=bool(expected_state),
        )
        raise AuthError("OAuth state mismatch", code=ErrorCode.TOKEN_INVALID)

    settings = get_settings()
    token = await exchange_code_for_token(code, settings=settings)

    response = RedirectResponse(settings.frontend_url, status_code=302)
    response.set_cookie(
        settings.access_token_cookie_name,
        token.access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=token.expires_in,
    )
    response.delete_cookie(STATE_COOKIE_NAME)
    return response


@router.post("/logout")
async def logout() -> JSONResponse:
    settings = get_settings()
    response = JSONResponse({"status": "ok"})
    response.delete_cookie(settings.access_token_cookie_name)
    return response


@router.get("/me")
async def get_profile(
    access_token: str = Depends(get_access_token),
) -> Dict[str, Any]:
    """Return the signed-in user's Graph profile."""
    async with GraphAPIClient(access_token) as client:
        return await client.get_me()
