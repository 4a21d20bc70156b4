"""
Identity provider client.

Session tokens are JWTs signed by the identity provider. We verify them
against the provider's published JWKS (RS256) and hand back the `sub`
claim, the provider's stable subject id. Mapping that subject to an
internal users row is the caller's job.

For local development and tests a shared HS256 secret can be configured
instead; the JWKS endpoint is then never contacted.
"""
import logging
import time
from typing import Optional

import httpx
from jose import JWTError, jwt

from instaclone.config import settings

logger = logging.getLogger(__name__)


class IdentityClient:
    def __init__(self) -> None:
        self._http: Optional[httpx.AsyncClient] = None
        self._keys: dict[str, dict] = {}
        self._keys_fetched_at: float = 0.0
        self._refresh_attempted_at: float = 0.0

    async def start(self) -> None:
        if settings.identity_shared_secret:
            logger.info("Identity: shared-secret mode, JWKS lookup disabled")
            return
        self._http = httpx.AsyncClient(timeout=5.0)

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def verify(self, token: Optional[str]) -> Optional[str]:
        """Return the token's subject id, or None if it does not verify."""
        if not token:
            return None

        options = {"verify_aud": settings.identity_audience is not None}
        try:
            if settings.identity_shared_secret:
                claims = jwt.decode(
                    token,
                    settings.identity_shared_secret,
                    algorithms=["HS256"],
                    audience=settings.identity_audience,
                    issuer=settings.identity_issuer,
                    options=options,
                )
            else:
                key = await self._signing_key(token)
                if key is None:
                    logger.info("Rejected session token: unknown signing key")
                    return None
                claims = jwt.decode(
                    token,
                    key,
                    algorithms=settings.identity_algorithms,
                    audience=settings.identity_audience,
                    issuer=settings.identity_issuer,
                    options=options,
                )
        except JWTError as exc:
            logger.info("Rejected session token: %s", exc)
            return None

        subject = claims.get("sub")
        return subject or None

    async def _signing_key(self, token: str) -> Optional[dict]:
        kid = jwt.get_unverified_header(token).get("kid")
        if kid is not None and not isinstance(kid, str):
            return None

        now = time.time()
        stale = now - self._keys_fetched_at > settings.identity_jwks_ttl
        # Unknown kids come from untrusted headers: refetch at most once per interval
        throttled = now - self._refresh_attempted_at < settings.identity_jwks_min_refresh
        if (stale or kid not in self._keys) and not throttled:
            await self._refresh_keys()
        if kid is None and len(self._keys) == 1:
            return next(iter(self._keys.values()))
        return self._keys.get(kid)

    async def _refresh_keys(self) -> None:
        if self._http is None:
            await self.start()
        self._refresh_attempted_at = time.time()
        try:
            resp = await self._http.get(settings.identity_jwks_url)
            resp.raise_for_status()
            keys = resp.json().get("keys", [])
        except (httpx.HTTPError, ValueError) as exc:
            # Keep serving with the previous key set until the provider is back
            logger.warning("JWKS refresh failed: %s", exc)
            return
        self._keys = {k.get("kid"): k for k in keys}
        self._keys_fetched_at = time.time()
        logger.info("Loaded %d signing keys from %s", len(self._keys), settings.identity_jwks_url)


# Singleton
identity_client = IdentityClient()
