"""
Security Utilities
OpenID Connect discovery, authorization-code exchange and ID token verification
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from securevault.core.cache import (
    OIDC_DISCOVERY_KEY,
    OIDC_JWKS_KEY,
    CacheManager,
    get_cache_manager,
)
from securevault.core.config import settings
from securevault.core.exceptions import AuthenticationException, IdentityProviderException
from securevault.core.logging import get_logger

logger = get_logger(__name__)


class OIDCProvider:
    """Client for the external identity provider"""

    def __init__(
        self,
        cache: CacheManager,
        issuer: str = settings.OIDC_ISSUER,
        client_id: str = settings.OIDC_CLIENT_ID,
        client_secret: Optional[str] = settings.OIDC_CLIENT_SECRET,
        redirect_uri: str = settings.OIDC_REDIRECT_URI,
    ):
        self.cache = cache
        self.issuer = issuer.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._jwks_refreshed_at: Optional[float] = None

    async def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=settings.OIDC_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Identity provider request failed: {url}: {e}")
            raise IdentityProviderException(details={"url": url})

    async def discovery(self) -> Dict[str, Any]:
        """Provider metadata from /.well-known/openid-configuration"""
        return await self.cache.get_or_set(
            OIDC_DISCOVERY_KEY,
            lambda: self._get_json(f"{self.issuer}/.well-known/openid-configuration"),
            ttl=settings.OIDC_JWKS_CACHE_TTL,
        )

    async def jwks(self) -> Dict[str, Any]:
        """Signing keys used to verify ID tokens"""

        async def load() -> Dict[str, Any]:
            metadata = await self.discovery()
            return await self._get_json(metadata["jwks_uri"])

        return await self.cache.get_or_set(OIDC_JWKS_KEY, load, ttl=settings.OIDC_JWKS_CACHE_TTL)

    async def refresh_jwks(self) -> Dict[str, Any]:
        """
        Drop cached signing keys and fetch them again

        Used when a token names a key id missing from the cached set.
        Refetches happen at most once per OIDC_JWKS_REFRESH_INTERVAL seconds.
        """
        now = time.monotonic()
        if self._jwks_refreshed_at is not None and now - self._jwks_refreshed_at < settings.OIDC_JWKS_REFRESH_INTERVAL:
            return await self.jwks()

        self._jwks_refreshed_at = now
        await self.cache.delete(OIDC_JWKS_KEY)
        logger.info("Refreshing identity provider signing keys")
        return await self.jwks()

    async def authorization_url(self, state: str) -> str:
        metadata = await self.discovery()
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": settings.OIDC_SCOPES,
                "state": state,
            }
        )
        return f"{metadata['authorization_endpoint']}?{query}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for the provider's token response"""
        metadata = await self.discovery()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            async with httpx.AsyncClient(timeout=settings.OIDC_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(metadata["token_endpoint"], data=data)
                response.raise_for_status()
                tokens = response.json()
        except httpx.HTTPStatusError as e:
            # The provider answered; the code itself was rejected
            logger.warning(f"Authorization code exchange failed: {e}")
            raise AuthenticationException(
                message="Authorization code exchange failed",
                details={"status": e.response.status_code},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Token endpoint request failed: {e}")
            raise IdentityProviderException()

        if "id_token" not in tokens:
            raise AuthenticationException(message="Identity provider returned no ID token")
        return tokens

    async def end_session_url(self, id_token: Optional[str] = None) -> Optional[str]:
        metadata = await self.discovery()
        endpoint = metadata.get("end_session_endpoint")
        if not endpoint:
            return None

        params = {
            "client_id": self.client_id,
            "post_logout_redirect_uri": settings.OIDC_POST_LOGOUT_REDIRECT_URI,
        }
        if id_token:
            params["id_token_hint"] = id_token
        return f"{endpoint}?{urlencode(params)}"


class OIDCTokenVerifier:
    """Validate ID tokens: signature, audience, issuer and expiry"""

    def __init__(
        self,
        key_loader: Callable[[], Awaitable[Any]],
        audience: str,
        issuer: str,
        algorithms: List[str],
        key_refresher: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        self._key_loader = key_loader
        self._key_refresher = key_refresher
        self.audience = audience
        self.issuer = issuer
        self.algorithms = algorithms

    async def verify(self, token: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        """Return the token's claims or raise AuthenticationException"""
        key = await self._key_loader()
        if self._key_refresher is not None and _names_unknown_key(token, key):
            key = await self._key_refresher()

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                access_token=access_token,
                options={"verify_at_hash": access_token is not None},
            )
        except JWTError as e:
            raise AuthenticationException(
                message="Invalid token",
                details={"error": str(e)},
            )

        if not claims.get("sub"):
            raise AuthenticationException(message="Token has no subject")

        return claims


def _names_unknown_key(token: str, key: Any) -> bool:
    """Whether the token header carries a kid absent from a JWKS key set"""
    if not isinstance(key, dict) or "keys" not in key:
        return False
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JWTError:
        return False
    return kid is not None and kid not in {jwk.get("kid") for jwk in key["keys"]}


def user_fields_from_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
    """Map standard OIDC claims onto User columns"""
    return {
        "id": str(claims["sub"]),
        "email": claims.get("email"),
        "first_name": claims.get("given_name") or claims.get("first_name"),
        "last_name": claims.get("family_name") or claims.get("last_name"),
        "profile_image_url": claims.get("picture") or claims.get("profile_image_url"),
    }


_provider: Optional[OIDCProvider] = None


def get_oidc_provider() -> OIDCProvider:
    """Process-wide identity provider client"""
    global _provider
    if _provider is None:
        _provider = OIDCProvider(cache=get_cache_manager())
    return _provider


def get_token_verifier() -> OIDCTokenVerifier:
    """Dependency returning the ID token verifier backed by the provider's JWKS"""
    provider = get_oidc_provider()
    return OIDCTokenVerifier(
        key_loader=provider.jwks,
        audience=settings.OIDC_CLIENT_ID,
        issuer=settings.OIDC_ISSUER,
        algorithms=settings.OIDC_ALGORITHMS,
        key_refresher=provider.refresh_jwks,
    )
