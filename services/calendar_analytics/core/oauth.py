"""
OAuth2 authorization-code flow against the Microsoft identity platform.

The service only exchanges the code for an access token and hands the token
to the browser in an HTTP-only cookie; refresh and token storage are left to
the identity provider session.
"""

from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import Request

from services.calendar_analytics.models import TokenResponse
from services.calendar_analytics.settings import Settings, get_settings
from services.common.http_errors import AuthError, ErrorCode, ProviderError
from services.common.logging_config import get_logger

logger = get_logger(__name__)


def _authority(settings: Settings) -> str:
    return (
        f"{settings.microsoft_login_base_url.rstrip('/')}/"
        f"{settings.microsoft_tenant_id}/oauth2/v2.0"
    )


def _require_client_id(settings: Settings) -> str:
    if not settings.microsoft_client_id:
        raise ProviderError(
            "Microsoft OAuth client is not configured",
            provider="microsoft",
            code=ErrorCode.SERVICE_ERROR,
            status_code=500,
        )
    return settings.microsoft_client_id


def build_authorization_url(
    state: Optional[str] = None, settings: Optional[Settings] = None
) -> str:
    """Build the authorize URL the browser is redirected to at login."""
    settings = settings or get_settings()
    params = {
        "client_id": _require_client_id(settings),
        "response_type": "code",
        "redirect_uri": settings.oauth_redirect_uri,
        "response_mode": "query",
        "scope": settings.oauth_scopes,
    }
    if state:
        params["state"] = state
    return f"{_authority(settings)}/authorize?{urlencode(params)}"


async def exchange_code_for_token(
    code: str, settings: Optional[Settings] = None
) -> TokenResponse:
    """
    Exchange an authorization code for tokens.

    Raises:
        AuthError: The identity provider rejected the code.
        ProviderError: The token endpoint could not be reached.
    """
    settings = settings or get_settings()
    form = {
        "client_id": _require_client_id(settings),
        "client_secret": settings.microsoft_client_secret or "",
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.oauth_redirect_uri,
        "scope": settings.oauth_scopes,
    }
    token_url = f"{_authority(settings)}/token"

    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds)
        ) as client:
            response = await client.post(token_url, data=form)
    except httpx.RequestError as e:
        logger.error("Token endpoint unreachable", error_type=type(e).__name__)
        raise ProviderError(
            f"Could not reach the Microsoft token endpoint: {e}",
            provider="microsoft",
            code=ErrorCode.PROVIDER_UNAVAILABLE,
        )

    if response.status_code != 200:
        try:
            body = response.json()
        except ValueError:
            body = {}
        logger.warning(
            "Authorization code exchange rejected",
            status_code=response.status_code,
            error=body.get("error"),
        )
        raise AuthError(
            body.get("error_description") or "Authorization code exchange failed",
            code=ErrorCode.OAUTH_CODE_EXCHANGE_FAILED,
            details={"error": body.get("error")} if body.get("error") else None,
        )

    logger.info("Authorization code exchanged for access token")
    return TokenResponse.model_validate(response.json())


async def get_access_token(request: Request) -> str:
    """
    Resolve the Graph access token for a request.

    The Authorization header wins over the cookie set at login.
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    cookie_token = request.cookies.get(get_settings().access_token_cookie_name)
    if cookie_token:
        return cookie_token

    raise AuthError("Not authenticated. Please sign in.", code=ErrorCode.TOKEN_MISSING)
