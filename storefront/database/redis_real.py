"""
Real Redis-backed cache for production when REDIS_URL is set.
Implements the same interface as storefront.database.redis (in-memory stub).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "products:all"
SYNC_STATUS_KEY = "sync:status"
WEBHOOK_LOG_KEY = "webhooks:events"


class RedisCache:
    """
    Redis-backed catalog and checkout store.
    """

    def __init__(self, url: str, webhook_log_size: int = 500) -> None:
        self._client = redis.from_url(url, decode_responses=True)
        self._webhook_log_size = webhook_log_size

    def _get_json(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._client.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable value at %s", key)
            return None

    # --- Catalog snapshot ------------------------------------------------------

    def set_snapshot(self, snapshot: Dict[str, Any], ttl: Optional[int] = None) -> None:
        # Single SET so readers see either the old or the new catalog, never a mix.
        # No TTL by default: a stale catalog is still served while syncs fail.
        value = json.dumps(snapshot, default=str)
        if ttl:
            self._client.setex(SNAPSHOT_KEY, ttl, value)
        else:
            self._client.set(SNAPSHOT_KEY, value)

    def get_snapshot(self) -> Optional[Dict[str, Any]]:
        return self._get_json(SNAPSHOT_KEY)

    # --- Sync status -----------------------------------------------------------

    def set_sync_status(self, status: Dict[str, Any], ttl: int = 300) -> None:
        self._client.setex(SYNC_STATUS_KEY, ttl, json.dumps(status, default=str))

    def get_sync_status(self) -> Optional[Dict[str, Any]]:
        return self._get_json(SYNC_STATUS_KEY)

    # --- Order records ---------------------------------------------------------

    def set_order_record(self, key: str, data: Dict[str, Any], ttl: int = 2592000) -> None:
        self._client.setex(f"order:{key}", ttl, json.dumps(data, default=str))

    def get_order_record(self, key: str) -> Optional[Dict[str, Any]]:
        return self._get_json(f"order:{key}")

    # --- Webhook event log -----------------------------------------------------

    def append_webhook_event(self, event: Dict[str, Any]) -> None:
        pipe = self._client.pipeline()
        pipe.lpush(WEBHOOK_LOG_KEY, json.dumps(event, default=str))
        pipe.ltrim(WEBHOOK_LOG_KEY, 0, self._webhook_log_size - 1)
        pipe.execute()

    def get_webhook_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        events = []
        for raw in self._client.lrange(WEBHOOK_LOG_KEY, 0, limit - 1):
            try:
                events.append(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return events

    def ping(self) -> bool:
        try:
            return self._client.ping()
        except redis.RedisError:
            return False
