"""Azure AD bearer-token validation for the org chart API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp
from fastapi import HTTPException, status
from jose import jwk, jwt
from jose.constants import Algorithms
from jose.exceptions import ExpiredSignatureError, JWSSignatureError, JWTClaimsError, JWTError

logger = logging.getLogger(__name__)

_JWKS_TTL_SECONDS = 24 * 60 * 60


class JwksCache:
    """Signing keys per tenant, refetched once a day or when an unknown ``kid`` shows up."""

    def __init__(self, ttl_seconds: float = _JWKS_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._keys: dict[str, dict[str, Any]] = {}
        self._fetched_at: dict[str, float] = {}

    def clear(self) -> None:
        self._keys.clear()
        self._fetched_at.clear()

    async def _fetch(self, tenant_id: str) -> dict[str, Any]:
        jwks_uri = f"https://login.microsoftonline.com/{tenant_id}/discovery/v2.0/keys"
        logger.info("Fetching JWKS from %s", jwks_uri)
        timeout = aiohttp.ClientTimeout(total=15)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(jwks_uri) as response:
                if response.status != 200:
                    raise aiohttp.ClientResponseError(
                        response.request_info, response.history, status=response.status
                    )
                return await response.json()

    async def get(self, tenant_id: str, *, force: bool = False) -> dict[str, Any]:
        fresh = tenant_id in self._keys and time.time() - self._fetched_at[tenant_id] < self.ttl_seconds
        if fresh and not force:
            return self._keys[tenant_id]

        try:
            jwks = await self._fetch(tenant_id)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Failed to fetch JWKS: %s", e)
            if tenant_id in self._keys:
                logger.warning("Using expired JWKS from cache for tenant %s", tenant_id)
                return self._keys[tenant_id]
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Could not fetch JWKS: {e}",
            ) from e

        self._keys[tenant_id] = jwks
        self._fetched_at[tenant_id] = time.time()
        return jwks

    async def signing_key(self, token: str, tenant_id: str) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token header: {e}",
            ) from e

        kid = header.get("kid")
        if not kid:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has no 'kid' in header",
            )

        for force in (False, True):
            jwks = await self.get(tenant_id, force=force)
            for key in jwks.get("keys", []):
                if key.get("kid") == kid:
                    return key

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"No matching signing key for kid: {kid}",
        )


jwks_cache = JwksCache()


async def validate_token(token: str, tenant_id: str, client_id: str) -> dict[str, Any]:
    if not tenant_id or not client_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing Azure AD configuration",
        )

    key_dict = await jwks_cache.signing_key(token, tenant_id)
    algorithm = key_dict.get("alg", Algorithms.RS256)
    public_key = jwk.construct(key_dict, algorithm=algorithm)

    issuers = [
        f"https://login.microsoftonline.com/{tenant_id}/v2.0",
        f"https://sts.windows.net/{tenant_id}/",
    ]
    audiences = [client_id, f"api://{client_id}"]
    # issuer and audience are checked below against several accepted values
    options = {"verify_aud": False, "verify_iss": False, "require_exp": True}

    try:
        claims = jwt.decode(token, public_key, algorithms=[algorithm], options=options)
    except ExpiredSignatureError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token is expired") from e
    except JWSSignatureError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token signature") from e
    except (JWTClaimsError, JWTError) as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials") from e

    if claims.get("iss") not in issuers:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token issuer. Expected one of: {issuers}",
        )

    token_audiences = claims.get("aud")
    if isinstance(token_audiences, str):
        token_audiences = [token_audiences]
    if not set(token_audiences or []) & set(audiences):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token audience. Expected one of: {audiences}",
        )

    return claims


def extract_roles(payload: dict[str, Any]) -> list[str]:
    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        return []
    return [str(r) for r in roles if isinstance(r, str)]
