"""
Product reconciliation cache.

Storefront pages read products from a snapshot held in the cache store
instead of calling Zoho on every request. `sync_products` rebuilds the
snapshot from Zoho Inventory (the only source that exposes the custom
"display in app" flag) and replaces it wholesale in a single write.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from storefront.errors import StorefrontError
from storefront.integrations.contracts.catalog import CacheStats, CatalogProduct, CatalogSnapshot, SyncResult
from storefront.integrations.policy.response_wrappers import (
    extract_custom_flags,
    normalize_flag_key,
    normalize_inventory_product,
    normalize_item_page,
)

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = {"true", "1", "yes", "on", "checked"}
PAGE_SIZE = 200
MAX_PAGES = 100
NON_ALNUM = re.compile(r"[^a-z0-9]")
SLUG_RE = re.compile(r"[^a-z0-9]+")


def is_truthy_flag(value: Any) -> bool:
    """Tolerant truth table for custom checkbox fields."""
    if value is True:
        return True
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def _squash(value: Any) -> str:
    return NON_ALNUM.sub("", normalize_flag_key(str(value)))


def _flag_matches(key: str, wanted: str) -> bool:
    if key == wanted:
        return True
    # Numeric entries are customfield ids and only match exactly.
    return not wanted.isdigit() and wanted in key


def is_displayable(item: Dict[str, Any], labels: Iterable[str]) -> bool:
    """
    True when a custom field named like one of `labels` holds a truthy value.

    Names are compared with case, separators and the `cf_` prefix removed, and
    a field whose name contains the wanted name also matches, so
    "DisplayInApp", "cf_display_in_app" and "Display in App (web)" all match
    "display_in_app". An entry that equals a customfield_id matches that field.
    """
    wanted = [w for w in (_squash(label) for label in labels) if w]
    for key, value in extract_custom_flags(item).items():
        squashed = _squash(key)
        if any(_flag_matches(squashed, w) for w in wanted) and is_truthy_flag(value):
            return True
    return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductCache:
    def __init__(
        self,
        inventory_client,
        store,
        *,
        display_labels: Iterable[str] = ("display_in_app",),
        ttl_seconds: int = 0,
        stale_after_hours: float = 24.0,
        alerter=None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.inventory_client = inventory_client
        self.store = store
        self.display_labels = tuple(display_labels)
        self.ttl_seconds = ttl_seconds
        self.stale_after_ms = int(stale_after_hours * 3600 * 1000)
        self.alerter = alerter
        self._now = now

    # --- sync ------------------------------------------------------------------

    async def sync_products(self) -> SyncResult:
        started = time.monotonic()
        started_at = self._now()
        self.store.set_sync_status({"status": "syncing", "started_at": started_at.isoformat()})
        logger.info("Product sync started")

        try:
            items = await self._fetch_all_items()
            synced_at = self._now()
            products = self._build_products(items, synced_at.isoformat())
            duration_ms = int((time.monotonic() - started) * 1000)
            snapshot = CatalogSnapshot(products=tuple(products), synced_at=synced_at, duration_ms=duration_ms)
            self.store.set_snapshot(snapshot.to_dict(), ttl=self.ttl_seconds or None)
        except StorefrontError as e:
            # The previous snapshot is left untouched.
            logger.error("Product sync failed: %s", e)
            self.store.set_sync_status(
                {"status": "failed", "error": str(e), "failed_at": self._now().isoformat()}
            )
            if self.alerter is not None:
                self.alerter.alert("product_sync", f"Product sync failed: {e}", {"error_type": e.__class__.__name__})
            raise

        self.store.set_sync_status(
            {
                "status": "completed",
                "product_count": len(products),
                "duration_ms": duration_ms,
                "completed_at": synced_at.isoformat(),
            }
        )
        logger.info("Product sync completed: %d products in %dms (%d items scanned)", len(products), duration_ms, len(items))
        return SyncResult(product_count=len(products), duration_ms=duration_ms, synced_at=synced_at)

    async def _fetch_all_items(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        path = self.inventory_client.path("list_items")
        for page in range(1, MAX_PAGES + 1):
            raw = await self.inventory_client.request(
                "GET",
                path,
                query={"page": page, "per_page": PAGE_SIZE, "custom_fields": "true", "include": "documents"},
            )
            page_items, has_more = normalize_item_page(raw)
            items.extend(page_items)
            if not has_more:
                break
        else:
            logger.warning("Stopped paging items after %d pages", MAX_PAGES)
        return items

    def _build_products(self, items: List[Dict[str, Any]], synced_at: str) -> List[CatalogProduct]:
        products = []
        for item in items:
            if not is_displayable(item, self.display_labels):
                continue
            product = normalize_inventory_product(item, synced_at=synced_at)
            if product.status.lower() != "active":
                continue
            products.append(product)
        return products

    # --- reads -----------------------------------------------------------------

    def _snapshot(self) -> Optional[CatalogSnapshot]:
        raw = self.store.get_snapshot()
        if not raw:
            return None
        return CatalogSnapshot.from_dict(raw)

    def get_all_products(self) -> List[CatalogProduct]:
        snapshot = self._snapshot()
        return list(snapshot.products) if snapshot else []

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        for product in self.get_all_products():
            if product.id == str(product_id):
                return product
        return None

    def get_categories(self) -> List[Dict[str, Any]]:
        """Categories of the displayed products, with product counts, sorted by name."""
        categories: Dict[str, Dict[str, Any]] = {}
        for product in self.get_all_products():
            if not product.category_id:
                continue
            entry = categories.setdefault(
                str(product.category_id),
                {
                    "id": str(product.category_id),
                    "name": product.category_name or "",
                    "slug": SLUG_RE.sub("-", (product.category_name or "").lower()).strip("-"),
                    "product_count": 0,
                },
            )
            entry["product_count"] += 1
        return sorted(categories.values(), key=lambda c: (c["name"].lower(), c["id"]))

    def get_product_by_sku(self, sku: str) -> Optional[CatalogProduct]:
        wanted = (sku or "").strip().lower()
        if not wanted:
            return None
        for product in self.get_all_products():
            if product.sku.lower() == wanted:
                return product
        return None

    def get_cache_stats(self) -> CacheStats:
        snapshot = self._snapshot()
        sync_status = self.store.get_sync_status()
        if snapshot is None:
            return CacheStats(
                last_sync=None,
                cache_age_ms=None,
                product_count=0,
                sync_status=sync_status,
                healthy=False,
                resync_recommended=True,
            )

        age_ms = int((self._now() - snapshot.synced_at).total_seconds() * 1000)
        stale = age_ms > self.stale_after_ms
        count = len(snapshot.products)
        return CacheStats(
            last_sync=snapshot.synced_at,
            cache_age_ms=age_ms,
            product_count=count,
            sync_status=sync_status,
            healthy=count > 0 and not stale,
            resync_recommended=stale or count == 0,
        )
