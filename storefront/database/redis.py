"""
Lightweight in-memory RedisCache replacement for local development.

Implements the same interface as storefront.database.redis_real so the
FastAPI app and the tests can run without a real Redis instance.
"""

from __future__ import annotations

import copy
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple


class RedisCache:
    def __init__(self, webhook_log_size: int = 500) -> None:
        # The whole catalog lives behind one reference; a sync swaps it in one assignment.
        self._snapshot: Optional[Dict[str, Any]] = None
        self._sync_status: Optional[Tuple[Dict[str, Any], float]] = None
        self._orders: Dict[str, Dict[str, Any]] = {}
        self._webhook_events: Deque[Dict[str, Any]] = deque(maxlen=webhook_log_size)

    # --- Catalog snapshot ------------------------------------------------------

    def set_snapshot(self, snapshot: Dict[str, Any], ttl: Optional[int] = None) -> None:
        # TTL is ignored in this in-memory implementation.
        self._snapshot = copy.deepcopy(snapshot)

    def get_snapshot(self) -> Optional[Dict[str, Any]]:
        return self._snapshot

    # --- Sync status -----------------------------------------------------------

    def set_sync_status(self, status: Dict[str, Any], ttl: int = 300) -> None:
        self._sync_status = (dict(status), time.monotonic() + ttl)

    def get_sync_status(self) -> Optional[Dict[str, Any]]:
        if self._sync_status is None:
            return None
        status, expires = self._sync_status
        if time.monotonic() > expires:
            self._sync_status = None
            return None
        return dict(status)

    # --- Order records (checkout verification) ---------------------------------

    def set_order_record(self, key: str, data: Dict[str, Any], ttl: int = 2592000) -> None:
        self._orders[key] = dict(data)

    def get_order_record(self, key: str) -> Optional[Dict[str, Any]]:
        record = self._orders.get(key)
        return dict(record) if record is not None else None

    # --- Webhook event log -----------------------------------------------------

    def append_webhook_event(self, event: Dict[str, Any]) -> None:
        self._webhook_events.appendleft(dict(event))

    def get_webhook_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self._webhook_events)[:limit]

    # --- Misc -----------------------------------------------------------------

    def ping(self) -> bool:
        """Always True so the health endpoint reports the store as up in dev mode."""
        return True
