from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from storefront.domain.orders.models import LineItem

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[LineItem], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class _Subscription:
    merchant_id: str
    on_insert: ChangeHandler
    on_update: ChangeHandler


class ChangeFeed:
    """In-process push channel for line-item inserts and updates, per merchant."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, merchant_id: str, on_insert: ChangeHandler, on_update: ChangeHandler) -> Unsubscribe:
        subscription = _Subscription(merchant_id=merchant_id, on_insert=on_insert, on_update=on_update)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def subscriber_count(self, merchant_id: str) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if s.merchant_id == merchant_id)

    def publish_insert(self, item: LineItem) -> None:
        self._publish(item, "insert")

    def publish_update(self, item: LineItem) -> None:
        self._publish(item, "update")

    def _publish(self, item: LineItem, kind: str) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.merchant_id == item.merchant_id]
        for subscription in targets:
            handler = subscription.on_insert if kind == "insert" else subscription.on_update
            try:
                handler(item)
            except Exception:
                # A broken listener must not fail the write that triggered it.
                logger.exception("line item %s handler failed for line item %s", kind, item.id)


@lru_cache(maxsize=1)
def get_change_feed() -> ChangeFeed:
    return ChangeFeed()
