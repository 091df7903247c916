import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from storefront.errors import AuthenticationError, RateLimitedError
from storefront.integrations.contracts.interfaces import Surface
from storefront.integrations.zoho.token_manager import TokenManager
from storefront.utils.config_loader import OAuthCredentials, StorefrontSettings


def _settings(**overrides):
    creds = OAuthCredentials(client_id="cid", client_secret="csecret", refresh_token="rtoken")
    return StorefrontSettings(
        credentials={s: creds for s in Surface},
        accounts_base_url="https://accounts.example.com",
        **overrides,
    )


class FakeAccounts:
    """Counts refresh-token grants and answers with a fixed payload."""

    def __init__(self, payload=None, status=200, text=None, delay=0.0):
        self.payload = payload if payload is not None else {"access_token": "tok-1", "expires_in": 3600}
        self.status = status
        self.text = text
        self.delay = delay
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.payload)

    def transport(self):
        return httpx.MockTransport(self)


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    accounts = FakeAccounts(delay=0.05)
    manager = TokenManager(_settings(), transport=accounts.transport())

    tokens = await asyncio.gather(*(manager.get_access_token(Surface.INVENTORY) for _ in range(10)))

    assert len(accounts.requests) == 1
    assert {t.value for t in tokens} == {"tok-1"}
    assert manager.status()["inventory"]["refreshes"] == 1


@pytest.mark.asyncio
async def test_refresh_posts_refresh_token_grant():
    accounts = FakeAccounts()
    manager = TokenManager(_settings(), transport=accounts.transport())

    await manager.get_access_token(Surface.CRM)

    request = accounts.requests[0]
    assert str(request.url) == "https://accounts.example.com/oauth/v2/token"
    form = parse_qs(request.content.decode())
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["rtoken"]


@pytest.mark.asyncio
async def test_cached_token_is_reused_until_margin():
    clock = {"now": datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)}
    accounts = FakeAccounts(payload={"access_token": "tok-1", "expires_in": 600})
    manager = TokenManager(_settings(token_safety_margin_seconds=60), transport=accounts.transport(), now=lambda: clock["now"])

    await manager.get_access_token(Surface.INVENTORY)
    clock["now"] += timedelta(seconds=500)
    await manager.get_access_token(Surface.INVENTORY)
    assert len(accounts.requests) == 1

    # 545s in: less than 60s left, so a fresh token is fetched
    clock["now"] += timedelta(seconds=45)
    await manager.get_access_token(Surface.INVENTORY)
    assert len(accounts.requests) == 2


@pytest.mark.asyncio
async def test_callers_get_copies_of_the_cached_token():
    manager = TokenManager(_settings(), transport=FakeAccounts().transport())

    first = await manager.get_access_token(Surface.INVENTORY)
    first.value = "tampered"
    second = await manager.get_access_token(Surface.INVENTORY)

    assert second.value == "tok-1"
    assert "tok-1" not in repr(second)


@pytest.mark.asyncio
async def test_surfaces_are_cached_independently():
    accounts = FakeAccounts()
    manager = TokenManager(_settings(), transport=accounts.transport())

    await manager.get_access_token(Surface.INVENTORY)
    await manager.get_access_token(Surface.DESK)

    assert len(accounts.requests) == 2


@pytest.mark.asyncio
async def test_error_payload_raises_authentication_error():
    accounts = FakeAccounts(payload={"error": "invalid_code"})
    manager = TokenManager(_settings(), transport=accounts.transport())

    with pytest.raises(AuthenticationError, match="invalid_code"):
        await manager.get_access_token(Surface.INVENTORY)


@pytest.mark.asyncio
async def test_non_json_token_response_raises_authentication_error():
    accounts = FakeAccounts(status=502, text="<html>bad gateway</html>")
    manager = TokenManager(_settings(), transport=accounts.transport())

    with pytest.raises(AuthenticationError):
        await manager.get_access_token(Surface.INVENTORY)


@pytest.mark.asyncio
async def test_throttled_token_endpoint_raises_rate_limited():
    accounts = FakeAccounts(status=400, text="You have made too many requests continuously.")
    manager = TokenManager(_settings(), transport=accounts.transport())

    with pytest.raises(RateLimitedError):
        await manager.get_access_token(Surface.INVENTORY)


@pytest.mark.asyncio
async def test_missing_credentials_fail_without_network():
    accounts = FakeAccounts()
    manager = TokenManager(StorefrontSettings(), transport=accounts.transport())

    with pytest.raises(AuthenticationError, match="Missing OAuth credentials"):
        await manager.get_access_token(Surface.COMMERCE)
    assert accounts.requests == []


@pytest.mark.asyncio
async def test_refresh_quota_is_enforced():
    accounts = FakeAccounts(payload={"error": "invalid_client"})
    manager = TokenManager(_settings(max_token_refreshes_per_hour=2), transport=accounts.transport())

    for _ in range(2):
        with pytest.raises(AuthenticationError):
            await manager.get_access_token(Surface.INVENTORY)

    with pytest.raises(RateLimitedError) as exc_info:
        await manager.get_access_token(Surface.INVENTORY)
    assert exc_info.value.retry_after > 0
    assert len(accounts.requests) == 2


@pytest.mark.asyncio
async def test_invalidate_forces_refresh():
    accounts = FakeAccounts()
    manager = TokenManager(_settings(), transport=accounts.transport())

    await manager.get_access_token(Surface.INVENTORY)
    manager.invalidate(Surface.INVENTORY)
    await manager.get_access_token(Surface.INVENTORY)

    assert len(accounts.requests) == 2
