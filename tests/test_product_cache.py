import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from storefront.catalog.product_cache import ProductCache, is_displayable, is_truthy_flag
from storefront.database.redis import RedisCache
from storefront.errors import VendorApiError
from storefront.integrations.clients.mocks.inventory import SEED_ITEMS, MockInventoryClient


@pytest.mark.parametrize(
    "value, expected",
    [
        (True, True),
        ("true", True),
        ("TRUE", True),
        (" yes ", True),
        ("on", True),
        ("checked", True),
        ("1", True),
        (1, True),
        (False, False),
        ("false", False),
        ("0", False),
        (0, False),
        ("", False),
        (None, False),
        ("maybe", False),
        (2, False),
    ],
)
def test_display_flag_truth_table(value, expected):
    assert is_truthy_flag(value) is expected


def test_display_filter_matches_label_variants():
    by_label = {"item_id": "1", "custom_fields": [{"label": "Display_In_App", "value": "checked"}]}
    by_field_name = {"item_id": "2", "custom_fields": [{"field_name": "cf_display_in_app", "value": 1}]}
    flattened = {"item_id": "3", "cf_display_in_app": "Yes", "cf_display_in_app_unformatted": True}
    missing = {"item_id": "4", "custom_fields": []}

    assert is_displayable(by_label, ["display_in_app"])
    assert is_displayable(by_field_name, ["display_in_app"])
    assert is_displayable(flattened, ["display_in_app"])
    assert not is_displayable(missing, ["display_in_app"])


def test_display_filter_matches_squashed_and_longer_names():
    camel = {"item_id": "1", "custom_fields": [{"label": "DisplayInApp", "value": True}]}
    longer = {"item_id": "2", "custom_fields": [{"label": "Display in App (web)", "value": "yes"}]}
    hidden = {"item_id": "3", "custom_fields": [{"label": "DisplayInApp", "value": False}]}

    assert is_displayable(camel, ["display_in_app"])
    assert is_displayable(longer, ["display_in_app"])
    assert not is_displayable(hidden, ["display_in_app"])


def test_display_filter_accepts_customfield_id():
    item = {"item_id": "1", "custom_fields": [{"customfield_id": "460000000012345", "label": "Storefront", "value": True}]}
    other = {"item_id": "2", "custom_fields": [{"customfield_id": "9460000000012345", "label": "Storefront", "value": True}]}

    assert is_displayable(item, ["460000000012345"])
    assert not is_displayable(other, ["460000000012345"])


@pytest.mark.asyncio
async def test_sync_keeps_only_flagged_active_products(inventory, store):
    cache = ProductCache(inventory, store)

    result = await cache.sync_products()

    assert result.product_count == 2
    ids = {p.id for p in cache.get_all_products()}
    assert ids == {"4600000000001", "4600000000002"}
    shoe = cache.get_product("4600000000001")
    assert shoe.price == 89.5
    assert shoe.images == ("/api/images/4600000000001",)
    assert cache.get_product_by_sku("sock-merino").name == "Merino Hiking Sock"
    assert store.get_sync_status()["status"] == "completed"


@pytest.mark.asyncio
async def test_sync_pages_through_all_items(store):
    items = [
        {"item_id": str(i), "name": f"Item {i}", "rate": 1, "status": "active", "custom_fields": [{"label": "display_in_app", "value": True}]}
        for i in range(450)
    ]
    inventory = MockInventoryClient(items=items)
    cache = ProductCache(inventory, store)

    result = await cache.sync_products()

    assert result.product_count == 450
    assert inventory.calls_to("list_items") == 3


@pytest.mark.asyncio
async def test_failed_sync_keeps_previous_snapshot(inventory, store, alerter):
    cache = ProductCache(inventory, store, alerter=alerter)
    await cache.sync_products()
    before = [p.id for p in cache.get_all_products()]

    inventory.fail_on["list_items"] = VendorApiError("Zoho API error (500): boom", status=500)
    with pytest.raises(VendorApiError):
        await cache.sync_products()

    assert [p.id for p in cache.get_all_products()] == before
    assert store.get_sync_status()["status"] == "failed"
    assert alerter.sent[-1]["category"] == "product_sync"


@pytest.mark.asyncio
async def test_reader_sees_old_or_new_snapshot_never_a_mix(store):
    inventory = MockInventoryClient()
    cache = ProductCache(inventory, store)
    await cache.sync_products()
    old_ids = {p.id for p in cache.get_all_products()}

    new_items = [dict(item, item_id=f"new-{item['item_id']}") for item in SEED_ITEMS]
    inventory.items = new_items
    original_request = inventory.request

    async def slow_request(*args, **kwargs):
        await asyncio.sleep(0.01)
        return await original_request(*args, **kwargs)

    inventory.request = slow_request

    seen = []

    async def reader():
        for _ in range(10):
            seen.append({p.id for p in cache.get_all_products()})
            await asyncio.sleep(0.003)

    await asyncio.gather(cache.sync_products(), reader())
    new_ids = {p.id for p in cache.get_all_products()}

    assert new_ids == {f"new-{i}" for i in old_ids}
    assert all(snapshot in (old_ids, new_ids) for snapshot in seen)


@pytest.mark.asyncio
async def test_cache_stats_recommend_resync_when_stale(inventory, store):
    now = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
    clock = {"now": now}
    cache = ProductCache(inventory, store, now=lambda: clock["now"])

    empty = cache.get_cache_stats()
    assert empty.product_count == 0
    assert empty.resync_recommended is True

    await cache.sync_products()
    fresh = cache.get_cache_stats()
    assert fresh.healthy is True
    assert fresh.resync_recommended is False

    clock["now"] = now + timedelta(hours=25)
    stale = cache.get_cache_stats()
    assert stale.resync_recommended is True
    assert stale.cache_age_ms == 25 * 3600 * 1000


@pytest.mark.asyncio
async def test_categories_of_displayed_products(inventory, store):
    cache = ProductCache(inventory, store)
    assert cache.get_categories() == []

    await cache.sync_products()

    assert cache.get_categories() == [
        {"id": "cat-shoes", "name": "Shoes", "slug": "shoes", "product_count": 1},
        {"id": "cat-socks", "name": "Socks", "slug": "socks", "product_count": 1},
    ]


@pytest.mark.asyncio
async def test_snapshot_has_no_expiry_by_default(inventory):
    class RecordingStore(RedisCache):
        def set_snapshot(self, snapshot, ttl=None):
            self.ttl = ttl
            super().set_snapshot(snapshot, ttl=ttl)

    store = RecordingStore()
    await ProductCache(inventory, store).sync_products()
    assert store.ttl is None

    await ProductCache(inventory, store, ttl_seconds=3600).sync_products()
    assert store.ttl == 3600
