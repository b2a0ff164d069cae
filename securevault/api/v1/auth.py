"""
Authentication API Routes
OpenID Connect login/logout redirects and the current identity
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.api.dependencies import get_current_user
from securevault.core.config import settings
from securevault.core.exceptions import AuthenticationException, IdentityProviderException
from securevault.core.logging import get_logger
from securevault.core.security import (
    OIDCProvider,
    OIDCTokenVerifier,
    get_oidc_provider,
    get_token_verifier,
)
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.models.auth import UserResponse
from securevault.services.users import UserService

logger = get_logger(__name__)
router = APIRouter()

STATE_COOKIE_NAME = "securevault_oidc_state"


@router.get("/login")
async def login(provider: OIDCProvider = Depends(get_oidc_provider)):
    """Redirect to the identity provider's authorization endpoint"""
    state = secrets.token_urlsafe(32)
    url = await provider.authorization_url(state)

    response = RedirectResponse(url=url, status_code=302)
    response.set_cookie(
        STATE_COOKIE_NAME,
        state,
        max_age=600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
    provider: OIDCProvider = Depends(get_oidc_provider),
    verifier: OIDCTokenVerifier = Depends(get_token_verifier),
):
    """Complete the authorization-code flow and start a session"""
    if error:
        raise AuthenticationException(message="Login was rejected", details={"error": error})

    expected_state = request.cookies.get(STATE_COOKIE_NAME)
    if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise AuthenticationException(message="Invalid login state")

    tokens = await provider.exchange_code(code)
    claims = await verifier.verify(tokens["id_token"], access_token=tokens.get("access_token"))
    user = await UserService.upsert_from_claims(db, claims)

    logger.info(f"User logged in: {user.id}")

    response = RedirectResponse(url="/", status_code=302)
    response.delete_cookie(STATE_COOKIE_NAME)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        tokens["id_token"],
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/logout")
async def logout(
    request: Request,
    provider: OIDCProvider = Depends(get_oidc_provider),
):
    """End the session locally and at the identity provider"""
    id_token = request.cookies.get(settings.SESSION_COOKIE_NAME)

    try:
        url = await provider.end_session_url(id_token)
    except IdentityProviderException:
        url = None

    response = RedirectResponse(url=url or settings.OIDC_POST_LOGOUT_REDIRECT_URI, status_code=302)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@router.get("/auth/user", response_model=UserResponse)
async def get_auth_user(current_user: UserModel = Depends(get_current_user)):
    """Current authenticated identity"""
    return UserResponse.model_validate(current_user)
