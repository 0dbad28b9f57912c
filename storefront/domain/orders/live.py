from __future__ import annotations

import logging
import threading
from typing import Callable

from storefront.domain.orders.errors import NotFound, PersistenceFailure
from storefront.domain.orders.models import LineItem, OrderGroup
from storefront.domain.orders.queries import load_order_groups
from storefront.persistence.store import OrderStore

logger = logging.getLogger(__name__)

GroupLoader = Callable[[], list[OrderGroup]]


class OrderFeed:
    """Latest order groups for one merchant, rebuilt on every pushed change.

    Pushed rows are only a trigger: each insert or update re-fetches the
    merchant's snapshot and re-aggregates it through `store.reader()`, since
    a push may arrive while the writing session is still finishing its commit.
    `loader` overrides the fetch.
    """

    def __init__(self, store: OrderStore, merchant_id: str, loader: GroupLoader | None = None):
        self.store = store
        self.merchant_id = merchant_id
        self._loader = loader or self._load_snapshot
        self._lock = threading.RLock()
        self._groups: list[OrderGroup] = []
        self._unsubscribe: Callable[[], None] | None = None
        self.new_order_alert = False
        self.last_error: str | None = None
        self.refresh_count = 0

    def _load_snapshot(self) -> list[OrderGroup]:
        with self.store.reader() as reader:
            return load_order_groups(reader, self.merchant_id)

    def __enter__(self) -> OrderFeed:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> list[OrderGroup]:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_to_line_item_changes(
                self.merchant_id,
                self._on_insert,
                self._on_update,
            )
        return self.refresh()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def groups(self) -> list[OrderGroup]:
        with self._lock:
            return list(self._groups)

    def get(self, group_id: str) -> OrderGroup:
        for group in self.groups:
            if group.group_id == group_id:
                return group
        raise NotFound(f"order group {group_id} not found for merchant {self.merchant_id}")

    def refresh(self) -> list[OrderGroup]:
        try:
            groups = self._loader()
        except PersistenceFailure as exc:
            logger.warning("order refresh for merchant %s failed, keeping previous snapshot: %s", self.merchant_id, exc)
            with self._lock:
                self.last_error = str(exc)
                return list(self._groups)
        with self._lock:
            self._groups = groups
            self.last_error = None
            self.refresh_count += 1
            return list(groups)

    def acknowledge(self) -> None:
        self.new_order_alert = False

    def _on_insert(self, item: LineItem) -> None:
        logger.info("new line item %s for merchant %s", item.id, self.merchant_id)
        self.new_order_alert = True
        self.refresh()

    def _on_update(self, _item: LineItem) -> None:
        self.refresh()
