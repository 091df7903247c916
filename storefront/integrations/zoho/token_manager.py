"""
OAuth access tokens for the Zoho surfaces.

One TokenManager is shared by every client in the process. It caches one
token per surface, refreshes it through the refresh-token grant when it
is about to expire, and makes concurrent callers share a single in-flight
refresh instead of each hitting the accounts server.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import httpx

from storefront.errors import AuthenticationError, RateLimitedError
from storefront.integrations.contracts.interfaces import AccessToken, Surface
from storefront.utils.config_loader import StorefrontSettings
from storefront.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    def __init__(
        self,
        settings: StorefrontSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self.margin_seconds = settings.token_safety_margin_seconds
        self.timeout_seconds = settings.vendor_timeout_seconds
        self._transport = transport
        self._now = now
        self._tokens: Dict[Surface, AccessToken] = {}
        self._inflight: Dict[Surface, asyncio.Future] = {}
        self._quotas: Dict[Surface, RateLimiter] = {}
        self._refresh_counts: Dict[Surface, int] = {}
        self._lock = asyncio.Lock()

    async def get_access_token(self, surface: Surface) -> AccessToken:
        """Return a token valid for at least the safety margin. Callers get a copy."""
        async with self._lock:
            cached = self._tokens.get(surface)
            if cached is not None and cached.is_valid(self.margin_seconds, self._now()):
                return replace(cached)

            task = self._inflight.get(surface)
            if task is None:
                quota = self._quota(surface)
                if not quota.try_acquire():
                    raise RateLimitedError(
                        f"Token refresh quota exhausted for {surface.value}",
                        retry_after=quota.retry_after(),
                    )
                task = asyncio.ensure_future(self._refresh(surface))
                self._inflight[surface] = task
                task.add_done_callback(lambda t, s=surface: self._forget_inflight(s, t))

        token = await asyncio.shield(task)
        return replace(token)

    def invalidate(self, surface: Surface) -> None:
        if self._tokens.pop(surface, None) is not None:
            logger.info("Dropped cached %s token", surface.value)

    def status(self) -> Dict[str, Dict[str, object]]:
        now = self._now()
        out: Dict[str, Dict[str, object]] = {}
        for surface in Surface:
            token = self._tokens.get(surface)
            out[surface.value] = {
                "cached": token is not None,
                "valid": bool(token and token.is_valid(self.margin_seconds, now)),
                "expires_at": token.expires_at.isoformat() if token else None,
                "refreshes": self._refresh_counts.get(surface, 0),
                "refresh_in_flight": surface in self._inflight,
            }
        return out

    # --- internals -----------------------------------------------------------

    def _quota(self, surface: Surface) -> RateLimiter:
        if surface not in self._quotas:
            self._quotas[surface] = RateLimiter(self.settings.max_token_refreshes_per_hour, window_seconds=3600)
        return self._quotas[surface]

    def _forget_inflight(self, surface: Surface, task: asyncio.Future) -> None:
        if self._inflight.get(surface) is task:
            del self._inflight[surface]

    async def _refresh(self, surface: Surface) -> AccessToken:
        creds = self.settings.credentials_for(surface)
        if not creds.configured:
            raise AuthenticationError(f"Missing OAuth credentials for {surface.value}")

        url = f"{self.settings.accounts_base_url.rstrip('/')}/oauth/v2/token"
        form = {
            "grant_type": "refresh_token",
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "refresh_token": creds.refresh_token,
        }

        logger.info("Refreshing %s access token", surface.value)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(url, data=form)
        except httpx.HTTPError as e:
            logger.error("Token refresh for %s failed: %s", surface.value, e.__class__.__name__)
            raise AuthenticationError(f"Token refresh request failed: {e.__class__.__name__}") from e

        text = response.text
        if response.status_code == 429 or "too many requests" in text.lower():
            raise RateLimitedError("Zoho accounts server is throttling token refreshes", payload={"status": response.status_code})

        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise AuthenticationError(f"Token endpoint returned non-JSON (HTTP {response.status_code})") from e

        if response.status_code >= 400 or "error" in data or not data.get("access_token"):
            reason = data.get("error") or f"HTTP {response.status_code}"
            logger.error("Token refresh for %s rejected: %s", surface.value, reason)
            raise AuthenticationError(f"Token refresh rejected: {reason}")

        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        token = AccessToken(
            surface=surface,
            value=data["access_token"],
            expires_at=self._now() + timedelta(seconds=expires_in),
        )
        self._tokens[surface] = token
        self._refresh_counts[surface] = self._refresh_counts.get(surface, 0) + 1
        logger.info("Refreshed %s token, expires in %ss", surface.value, expires_in)
        return token
