"""
Authenticated HTTP client for one Zoho surface.

JSON calls go through `request`, which owns the response contract: body
read as text first, throttling recognised before parsing, empty or non-JSON
bodies rejected, non-2xx and embedded non-zero `code` turned into
VendorApiError. `download` fetches binary bodies such as item images.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import httpx

from storefront.errors import AuthenticationError, MalformedResponseError, RateLimitedError, VendorApiError
from storefront.integrations.contracts.interfaces import Surface
from storefront.integrations.zoho.capabilities import CapabilitiesConfig, SurfaceCapabilities
from storefront.integrations.zoho.token_manager import TokenManager
from storefront.utils.config_loader import StorefrontSettings

logger = logging.getLogger(__name__)

Body = Union[None, str, bytes, Mapping[str, Any]]


class ZohoClient:
    def __init__(
        self,
        surface: Surface,
        capabilities: SurfaceCapabilities,
        token_manager: TokenManager,
        organization_id: str = "",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.surface = surface
        self.capabilities = capabilities
        self.base_url = capabilities.base_url.rstrip("/")
        self.token_manager = token_manager
        self.organization_id = organization_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def path(self, name: str, **params: str) -> str:
        return self.capabilities.path(name, **params)

    async def _send(
        self,
        method: str,
        path: str,
        body: Body = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        token = await self.token_manager.get_access_token(self.surface)

        headers: Dict[str, str] = {"Authorization": f"Zoho-oauthtoken {token.value}"}
        params: Dict[str, Any] = {k: v for k, v in (query or {}).items() if v is not None}
        if self.organization_id and self.capabilities.org_param:
            if self.capabilities.org_in_header:
                headers[self.capabilities.org_param] = self.organization_id
            else:
                params[self.capabilities.org_param] = self.organization_id

        # Serialize exactly once; pre-encoded bodies pass through untouched.
        content: Optional[Union[str, bytes]] = None
        if body is not None:
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)
            headers["Content-Type"] = "application/json"

        url = f"{self.base_url}{path}"
        logger.debug("Zoho %s %s %s", self.surface.value, method, path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                return await client.request(method, url, params=params, content=content, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("Zoho %s %s %s timed out", self.surface.value, method, path)
            raise VendorApiError(f"Request to {path} timed out", status=504) from e
        except httpx.TransportError as e:
            logger.error("Zoho %s %s %s transport error: %s", self.surface.value, method, path, e)
            raise VendorApiError(f"Request to {path} failed: {e.__class__.__name__}", status=502) from e

    async def request(
        self,
        method: str,
        path: str,
        body: Body = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = await self._send(method, path, body=body, query=query)
        return self._parse(response, path)

    async def download(self, path: str) -> Tuple[bytes, str]:
        """Binary GET (item images). Returns the body and its content type."""
        response = await self._send("GET", path)
        content_type = response.headers.get("Content-Type", "")
        if response.status_code == 200 and not content_type.startswith("application/json"):
            return response.content, content_type or "application/octet-stream"
        # Errors come back as the usual JSON envelope.
        self._parse(response, path)
        raise MalformedResponseError(f"Expected binary content from {path}", status=response.status_code)

    def _parse(self, response: httpx.Response, path: str) -> Dict[str, Any]:
        status = response.status_code
        text = response.text

        if status == 401:
            self.token_manager.invalidate(self.surface)
            raise AuthenticationError(f"Zoho rejected the access token for {self.surface.value}")

        # Throttle responses are often an HTML or plain-text page, so they are
        # recognised before the body is parsed.
        if status == 429 or (status >= 400 and "too many requests" in text.lower()):
            data = _try_json(text)
            vendor_message = data.get("message") or text.strip()[:200] or None
            raise RateLimitedError(
                f"Zoho API rate limit exceeded: {vendor_message or 'too many requests'}",
                retry_after=_retry_after(response),
                vendor_message=vendor_message,
                vendor_code=data.get("code"),
                payload=data,
            )

        if not text or not text.strip():
            raise MalformedResponseError(f"Empty response from {path}", status=status)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Invalid JSON response from {path} (HTTP {status})",
                status=status,
                preview=text[:200],
            ) from e

        if not isinstance(data, dict):
            raise MalformedResponseError(f"Unexpected response shape from {path}", status=status, preview=text[:200])

        vendor_message = data.get("message")
        vendor_code = data.get("code")

        if status < 200 or status >= 300:
            raise VendorApiError(
                f"Zoho API error ({status}): {vendor_message or 'unknown error'}",
                status=status,
                vendor_message=vendor_message,
                vendor_code=vendor_code,
                payload=data,
            )

        if vendor_code not in (None, 0, "0"):
            raise VendorApiError(
                f"Zoho API error: {vendor_message or 'unknown error'}",
                status=status,
                vendor_message=vendor_message,
                vendor_code=vendor_code,
                payload=data,
            )

        return data


def _try_json(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}


def _retry_after(response: httpx.Response, default: int = 60) -> int:
    try:
        return max(1, int(response.headers.get("Retry-After", default)))
    except ValueError:
        return default


def build_zoho_clients(
    settings: StorefrontSettings,
    capabilities: CapabilitiesConfig,
    token_manager: TokenManager,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[Surface, ZohoClient]:
    clients: Dict[Surface, ZohoClient] = {}
    for surface, caps in capabilities.surfaces.items():
        clients[surface] = ZohoClient(
            surface,
            caps,
            token_manager,
            organization_id=settings.organization_id(surface),
            timeout_seconds=settings.vendor_timeout_seconds,
            transport=transport,
        )
    return clients
