import pytest

import storefront.database.redis_real as redis_real
from storefront.database.redis import RedisCache as MemoryCache


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def lpush(self, key, value):
        self.ops.append(("lpush", key, value))

    def ltrim(self, key, start, end):
        self.ops.append(("ltrim", key, start, end))

    def execute(self):
        for op in self.ops:
            getattr(self.client, op[0])(*op[1:])
        self.ops = []


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.lists = {}
        self.setex_calls = 0
        self.set_calls = 0

    def setex(self, key, ttl, value):
        self.setex_calls += 1
        self.values[key] = value
        self.ttls[key] = ttl

    def set(self, key, value):
        self.set_calls += 1
        self.values[key] = value
        self.ttls.pop(key, None)

    def get(self, key):
        return self.values.get(key)

    def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)

    def ltrim(self, key, start, end):
        self.lists[key] = self.lists.get(key, [])[start:end + 1]

    def lrange(self, key, start, end):
        return self.lists.get(key, [])[start:end + 1]

    def pipeline(self):
        return FakePipeline(self)

    def ping(self):
        return True


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_real.redis, "from_url", lambda url, decode_responses=True: fake)
    return fake


def test_snapshot_is_written_in_one_call(fake_redis):
    cache = redis_real.RedisCache("redis://localhost:6379/0")

    cache.set_snapshot({"products": [{"id": "1"}], "synced_at": "2026-01-01T00:00:00+00:00"}, ttl=3600)

    assert fake_redis.setex_calls == 1
    assert fake_redis.ttls["products:all"] == 3600
    assert cache.get_snapshot()["products"] == [{"id": "1"}]


def test_snapshot_without_ttl_never_expires(fake_redis):
    cache = redis_real.RedisCache("redis://localhost:6379/0")

    cache.set_snapshot({"products": [], "synced_at": "2026-01-01T00:00:00+00:00"})

    assert fake_redis.set_calls == 1
    assert fake_redis.setex_calls == 0
    assert "products:all" not in fake_redis.ttls
    assert cache.get_snapshot()["products"] == []


def test_order_records_are_prefixed(fake_redis):
    cache = redis_real.RedisCache("redis://localhost:6379/0")

    cache.set_order_record("so:1", {"status": "pending_payment"})

    assert "order:so:1" in fake_redis.values
    assert cache.get_order_record("so:1") == {"status": "pending_payment"}
    assert cache.get_order_record("so:2") is None


def test_unreadable_values_are_ignored(fake_redis):
    cache = redis_real.RedisCache("redis://localhost:6379/0")
    fake_redis.values["sync:status"] = "{not json"

    assert cache.get_sync_status() is None


def test_webhook_log_is_capped(fake_redis):
    cache = redis_real.RedisCache("redis://localhost:6379/0", webhook_log_size=3)

    for i in range(5):
        cache.append_webhook_event({"event_id": str(i)})

    assert [e["event_id"] for e in cache.get_webhook_events()] == ["4", "3", "2"]


def test_memory_cache_matches_interface():
    cache = MemoryCache(webhook_log_size=2)
    snapshot = {"products": [], "synced_at": "2026-01-01T00:00:00+00:00"}

    cache.set_snapshot(snapshot)
    snapshot["products"].append({"id": "late"})
    for i in range(3):
        cache.append_webhook_event({"event_id": str(i)})

    assert cache.get_snapshot()["products"] == []
    assert [e["event_id"] for e in cache.get_webhook_events()] == ["2", "1"]
    assert cache.get_order_record("missing") is None
    assert cache.ping() is True
