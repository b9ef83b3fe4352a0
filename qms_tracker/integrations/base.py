"""
Shared request machinery for the Google API gateways.

  - Auth: OAuth2 bearer token when a TokenProvider is configured, otherwise
    the API key as ``key=`` query parameter (read-only access)
  - Retry: max 2 retries, exponential backoff (1 s → 4 s), only for
    timeouts, network errors and transient HTTP statuses
  - Timeout: 30 s (configurable)
  - Circuit breaker: ≥5 failures in 60 s → 30 s pause for that gateway

Threading: breaker state is an in-memory dict per gateway instance. Flask
is single-threaded by default; multi-worker deployments get one breaker per
worker.

Testability: pass a mock `session` and ``backoff=(0, 0)`` in tests.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

from qms_tracker.integrations.google_auth import TokenProvider

logger = logging.getLogger(__name__)

# ── Circuit breaker constants ──────────────────────────────────────────────
_CB_FAILURE_THRESHOLD = 5          # failures within window before opening
_CB_WINDOW_SECONDS = 60            # failure counting window (seconds)
_CB_OPEN_DURATION_SECONDS = 30     # how long circuit stays open

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = (1, 4)    # sleep[0] after 1st fail, sleep[1] after 2nd
_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

_DEFAULT_TIMEOUT = 30


class GatewayResult:
    """Structured return value from gateway calls.

    Attributes:
        ok:           True if the call succeeded (HTTP 2xx + no exception).
        status_code:  HTTP status code (None if network-level failure).
        data:         Parsed JSON response body (dict or list), else None.
        error:        Error message reported by the API, or None.
        duration_ms:  Round-trip latency of the last attempt in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int = 0,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


def google_error_message(resp: requests.Response) -> str:
    """Pull ``error.message`` out of a Google API error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return resp.reason or (resp.text or "")[:500] or f"HTTP {resp.status_code}"


class GoogleGateway:
    """Base class: authenticated, retried, circuit-broken HTTP for one Google API."""

    name = "google"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        token_provider: TokenProvider | None = None,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        backoff: tuple[float, ...] = _RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.token_provider = token_provider
        self.timeout = timeout
        self.backoff = tuple(backoff) or (0,)
        self._session = session
        self._cb_state: dict[str, Any] = {"failures": [], "open_until": None}

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Circuit breaker ───────────────────────────────────────────────────────

    def _circuit_closed(self) -> bool:
        """Return True if the circuit allows calls; False if open (paused)."""
        state = self._cb_state
        now = datetime.now(timezone.utc)

        if state["open_until"] and now < state["open_until"]:
            logger.warning("Circuit open for %s until %s", self.name, state["open_until"])
            return False

        window_start = now - timedelta(seconds=_CB_WINDOW_SECONDS)
        state["failures"] = [f for f in state["failures"] if f >= window_start]

        if len(state["failures"]) >= _CB_FAILURE_THRESHOLD:
            state["open_until"] = now + timedelta(seconds=_CB_OPEN_DURATION_SECONDS)
            logger.error(
                "Circuit opened for %s: %d failures in %ds window",
                self.name, len(state["failures"]), _CB_WINDOW_SECONDS,
            )
            return False

        return True

    def _record_failure(self) -> None:
        self._cb_state["failures"].append(datetime.now(timezone.utc))

    def _record_success(self) -> None:
        """On success, reset failure history and close the circuit."""
        self._cb_state["failures"].clear()
        self._cb_state["open_until"] = None

    # ── Auth ──────────────────────────────────────────────────────────────────

    def _auth(self, params: dict, require_token: bool) -> tuple[dict, dict, str | None]:
        """Return (headers, params, error). Error is set when auth is impossible."""
        headers = {"Accept": "application/json"}
        token = None
        if self.token_provider is not None:
            try:
                token = self.token_provider.get_token()
            except (requests.RequestException, ValueError) as exc:
                return headers, params, f"Could not obtain access token: {exc}"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif require_token:
            return headers, params, "No access token available. Configure GOOGLE_REFRESH_TOKEN."
        elif self.api_key:
            params = {**params, "key": self.api_key}
        return headers, params, None

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        json_body: dict | list | None = None,
        require_token: bool = False,
    ) -> GatewayResult:
        """Execute a request with auth, retries and the circuit breaker.

        A 401 evicts the cached token and retries once immediately.

        Returns:
            GatewayResult — always returns (never raises). Callers check .ok.
        """
        if not self._circuit_closed():
            return GatewayResult(
                ok=False, status_code=None, data=None,
                error=f"Circuit breaker is open — {self.name} calls temporarily suspended",
            )

        token_refreshed = False
        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0

        attempt = 0
        while attempt <= _RETRY_MAX:
            headers, call_params, auth_error = self._auth(dict(params or {}), require_token)
            if auth_error:
                return GatewayResult(ok=False, status_code=None, data=None, error=auth_error)

            kwargs: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
            if call_params:
                kwargs["params"] = call_params
            if json_body is not None:
                kwargs["json"] = json_body

            retryable = True
            try:
                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.status_code == 401 and self.token_provider and not token_refreshed:
                    self.token_provider.invalidate()
                    token_refreshed = True
                    continue

                if resp.ok:
                    self._record_success()
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(
                        ok=True, status_code=resp.status_code, data=data,
                        error=None, duration_ms=duration_ms,
                    )

                last_error = google_error_message(resp)
                retryable = resp.status_code in _RETRYABLE_STATUS
                if retryable:
                    self._record_failure()
                logger.warning(
                    "%s request failed attempt=%d/%d status=%d url=%s error=%s",
                    self.name, attempt + 1, _RETRY_MAX + 1, resp.status_code, url, last_error,
                )

            except requests.Timeout:
                duration_ms = int(self.timeout * 1000)
                last_error = f"Request timed out after {self.timeout}s"
                self._record_failure()
                logger.warning("%s request timed out attempt=%d/%d url=%s",
                               self.name, attempt + 1, _RETRY_MAX + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                self._record_failure()
                logger.warning("%s network error attempt=%d/%d url=%s error=%s",
                               self.name, attempt + 1, _RETRY_MAX + 1, url, last_error)

            if not retryable:
                break
            if attempt < _RETRY_MAX:
                sleep_s = self.backoff[min(attempt, len(self.backoff) - 1)]
                logger.info("Retrying %s request in %ss (attempt %d)", self.name, sleep_s, attempt + 2)
                time.sleep(sleep_s)
            attempt += 1

        return GatewayResult(
            ok=False, status_code=last_status, data=None,
            error=last_error, duration_ms=duration_ms,
        )
