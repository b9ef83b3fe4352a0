"""
Google OAuth2 access tokens for the Sheets and Drive gateways.

Uses the refresh-token grant: a long-lived refresh token (obtained once via
the consent screen, out of scope here) is exchanged for short-lived access
tokens, cached in memory until 60 s before expiry.

Testability: pass a mock `session` to TokenProvider() in tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import requests

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_DEFAULT_TIMEOUT = 30


class TokenProvider:
    """Exchange a refresh token for access tokens, with caching.

    ``get_token()`` returns None when no refresh token is configured, so
    read-only callers can fall back to an API key.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        token_url: str = GOOGLE_TOKEN_URL,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.token_url = token_url or GOOGLE_TOKEN_URL
        self.timeout = timeout
        self._session = session
        self._cached: dict | None = None

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _get_cached_token(self) -> str | None:
        entry = self._cached
        if not entry:
            return None
        # Treat token as expired 60 s before actual expiry
        if datetime.now(timezone.utc) >= entry["expires_at"] - timedelta(seconds=60):
            return None
        return entry["access_token"]

    def get_token(self) -> str | None:
        """Return a valid access token, or None when OAuth is not configured.

        Raises:
            requests.HTTPError: If the token endpoint returns non-2xx.
            ValueError: If the token response is missing access_token.
        """
        if not self.configured:
            return None

        cached = self._get_cached_token()
        if cached:
            return cached

        logger.info("Refreshing Google access token")
        resp = self.session.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        body = resp.json()

        access_token = body.get("access_token")
        if not access_token:
            raise ValueError("Token response missing access_token")

        expires_in = int(body.get("expires_in", 3600))
        self._cached = {
            "access_token": access_token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        logger.info("Google access token obtained expires_in=%ss", expires_in)
        return access_token

    def invalidate(self) -> None:
        """Evict the cached token; next call re-fetches from the token endpoint."""
        self._cached = None
