"""
Cart item to Inventory item resolution.

Lookup order is SKU, then name, then the raw product id. Results, including
misses, are cached for the life of the process; lookups that fail with a
vendor error are not cached so the next checkout retries them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from storefront.errors import AuthenticationError, MalformedResponseError, MappingError, RateLimitedError, VendorApiError
from storefront.integrations.contracts.checkout import (
    CartItem,
    LineItem,
    MappedItem,
    MappingFailure,
    MappingResult,
    MappingWarning,
)
from storefront.integrations.policy.response_wrappers import normalize_item

logger = logging.getLogger(__name__)

_MISS = object()


class ItemMapper:
    def __init__(self, inventory_client) -> None:
        self.inventory_client = inventory_client
        self._cache: Dict[str, Any] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    # --- lookups ---------------------------------------------------------------

    async def _search(self, cache_key: str, query: Dict[str, str]) -> List[Dict[str, Any]]:
        raw = await self.inventory_client.request("GET", self.inventory_client.path("list_items"), query=query)
        items = raw.get("items")
        if not isinstance(items, list):
            raise MalformedResponseError(f"Item search for {cache_key} returned no 'items' array", payload=raw)
        return [i for i in items if isinstance(i, dict) and i.get("item_id")]

    async def find_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        key = f"sku:{sku}"
        cached = self._cache.get(key, _MISS)
        if cached is not _MISS:
            return cached
        items = await self._search(key, {"sku": sku})
        match = next((i for i in items if str(i.get("sku") or "").lower() == sku.lower()), None)
        if match is None and items:
            match = items[0]
        self._cache[key] = match
        return match

    async def find_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        key = f"name:{name}"
        cached = self._cache.get(key, _MISS)
        if cached is not _MISS:
            return cached
        items = await self._search(key, {"item_name": name})
        match = next((i for i in items if i.get("name") == name), None)
        if match is None:
            lowered = name.lower()
            match = next(
                (
                    i
                    for i in items
                    if i.get("name")
                    and (lowered in i["name"].lower() or i["name"].lower() in lowered)
                ),
                None,
            )
        if match is None and items:
            match = items[0]
            logger.warning("Using first search result for '%s': %s", name, match.get("name"))
        self._cache[key] = match
        return match

    async def find_by_id(self, item_id: str) -> Optional[Dict[str, Any]]:
        key = f"id:{item_id}"
        cached = self._cache.get(key, _MISS)
        if cached is not _MISS:
            return cached
        try:
            raw = await self.inventory_client.request("GET", self.inventory_client.path("get_item", item_id=item_id))
        except VendorApiError as e:
            if e.status == 404 and not isinstance(e, RateLimitedError):
                self._cache[key] = None
                return None
            raise
        item = normalize_item(raw)
        self._cache[key] = item
        return item

    # --- cascade ---------------------------------------------------------------

    async def _resolve(self, cart_item: CartItem) -> Tuple[Optional[Dict[str, Any]], str, Optional[MappingWarning]]:
        if cart_item.sku:
            item = await self.find_by_sku(cart_item.sku)
            if item:
                return item, "sku", None

        if cart_item.name:
            item = await self.find_by_name(cart_item.name)
            if item:
                warning = None
                if cart_item.sku:
                    warning = MappingWarning(
                        item_name=cart_item.name,
                        method="name",
                        message=f"SKU '{cart_item.sku}' not found; matched by name to '{item.get('name')}'",
                    )
                return item, "name", warning

        if cart_item.product_id:
            item = await self.find_by_id(cart_item.product_id)
            if item:
                warning = MappingWarning(
                    item_name=cart_item.name,
                    method="id",
                    message=f"Matched by raw product id {cart_item.product_id}; check the SKU of this product",
                )
                logger.warning("Cart item '%s' mapped by raw id %s", cart_item.name, cart_item.product_id)
                return item, "id", warning

        return None, "", None

    async def map_items(self, cart_items: List[CartItem]) -> MappingResult:
        """
        Map every cart item to a clean sales-order line.

        Raises:
            MappingError: if no item could be mapped
            RateLimitedError / AuthenticationError: propagated untouched
        """
        result = MappingResult()
        for index, cart_item in enumerate(cart_items, start=1):
            try:
                item, method, warning = await self._resolve(cart_item)
            except (RateLimitedError, AuthenticationError):
                raise
            except (VendorApiError, MalformedResponseError) as e:
                logger.error("Lookup failed for cart item '%s': %s", cart_item.name, e)
                result.failures.append(
                    MappingFailure(cart_item.name, cart_item.sku, cart_item.product_id, f"lookup failed: {e}")
                )
                continue

            if item is None:
                result.failures.append(
                    MappingFailure(cart_item.name, cart_item.sku, cart_item.product_id, "no matching inventory item")
                )
                continue

            line = LineItem(
                item_id=str(item["item_id"]),
                name=str(item.get("name") or cart_item.name),
                description=cart_item.name,
                rate=float(cart_item.unit_price),
                quantity=cart_item.quantity,
                unit=str(item.get("unit") or "qty"),
                item_order=index,
            )
            result.mapped.append(MappedItem(line_item=line, method=method, warning=warning, cart_item=cart_item))

        if not result.mapped:
            raise MappingError(
                f"No cart items could be mapped to inventory items ({len(result.failures)} failed)",
                failures=result.failures,
            )
        if result.failures:
            logger.warning("Partial item mapping: %d mapped, %d failed", len(result.mapped), len(result.failures))
        return result
