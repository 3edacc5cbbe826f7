"""
Access-token cache for external document references (Google Drive).

One CredentialCache per caller, passed by reference into the attachment
resolver. It answers "is the token stale" and owns the single refresh path.
"""

import logging
import time
from dataclasses import dataclass

import httpx

from assistant_gateway.core.config import (
    CREDENTIAL_SKEW,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_TOKEN_URL,
    HTTP_TIMEOUT,
)

logger = logging.getLogger(__name__)


@dataclass
class CredentialCache:
    access_token: str | None = None
    expires_at: float | None = None  # epoch seconds
    refresh_token: str | None = None
    client_id: str = GOOGLE_CLIENT_ID
    client_secret: str = GOOGLE_CLIENT_SECRET
    token_url: str = GOOGLE_TOKEN_URL

    def is_stale(self, now: float | None = None, skew: float = CREDENTIAL_SKEW) -> bool:
        """True when the token is missing or expires within `skew` seconds."""
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at - skew

    async def refresh(self, client: httpx.AsyncClient) -> bool:
        """
        Exchange the refresh token for a new access token.

        Returns True on success. Failures are logged and leave the cache as it
        was; callers degrade rather than abort.
        """
        if not self.refresh_token:
            logger.info("[credentials:refresh] no refresh token; skipping")
            return False
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
        }
        try:
            response = await client.post(self.token_url, data=form, timeout=HTTP_TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning("[credentials:refresh] request failed: %s", e)
            return False
        if response.status_code != 200:
            logger.warning("[credentials:refresh] token endpoint %s: %s", response.status_code, response.text[:200])
            return False
        data = response.json()
        token = data.get("access_token")
        if not token:
            logger.warning("[credentials:refresh] response had no access_token")
            return False
        self.access_token = token
        self.expires_at = time.time() + float(data.get("expires_in") or 3600)
        logger.info("[credentials:refresh] OUT refreshed expires_in=%s", data.get("expires_in"))
        return True

    async def get_token(self, client: httpx.AsyncClient) -> str | None:
        """Current access token, refreshed first if stale. None when unavailable."""
        if self.is_stale():
            await self.refresh(client)
        return self.access_token
