"""
API Dependencies
Common dependencies for API routes
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.core.config import settings
from securevault.core.exceptions import AuthenticationException
from securevault.core.security import OIDCTokenVerifier, get_token_verifier
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.services.users import UserService


def extract_token(request: Request, authorization: Optional[str]) -> str:
    """Identity token from the Authorization header or the session cookie"""
    if authorization:
        if not authorization.startswith("Bearer "):
            raise AuthenticationException(message="Invalid authorization header format")
        return authorization.split(" ", 1)[1].strip()

    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise AuthenticationException(message="Not authenticated")
    return token


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    verifier: OIDCTokenVerifier = Depends(get_token_verifier),
) -> UserModel:
    """
    Dependency to get the current user from the identity token

    Users seen for the first time are created from the token's claims.

    Raises:
        AuthenticationException: If the token is missing or invalid
    """
    token = extract_token(request, authorization)
    claims = await verifier.verify(token)

    user = await UserService.get(db, str(claims["sub"]))
    if user is None:
        user = await UserService.upsert_from_claims(db, claims)

    return user
