from __future__ import annotations

import itertools
import threading
from contextlib import AbstractContextManager, nullcontext
from typing import Iterable, Sequence

from storefront.domain.orders.errors import NotFound, PersistenceFailure
from storefront.domain.orders.models import ClientSnapshot, LineItem, Product, Status
from storefront.persistence.feed import ChangeFeed, ChangeHandler, Unsubscribe
from storefront.persistence.store import now_utc


class InMemoryOrderStore:
    """OrderStore kept in process memory; used by tests and the demo CLI.

    `fail_next_update` and `fail_notifications` let callers exercise the
    failure paths of the status coordinator.
    """

    def __init__(self, feed: ChangeFeed | None = None, atomic_batch_updates: bool = True):
        self.feed = feed or ChangeFeed()
        self.atomic_batch_updates = atomic_batch_updates
        self.line_items: dict[int, LineItem] = {}
        self.products: dict[str, tuple[str, Product]] = {}
        self.clients: dict[str, tuple[str, ClientSnapshot]] = {}
        self.notifications: list[dict] = []
        self.fail_reads = False
        self.fail_next_update = False
        self.fail_notifications = False
        # Ids silently skipped by batch updates, to mimic a non-atomic backend.
        self.drop_update_ids: set[int] = set()
        self._ids = itertools.count(1)
        self._notification_ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_product(self, merchant_id: str, product: Product) -> Product:
        self.products[product.id] = (merchant_id, product)
        return product

    def add_client(self, merchant_id: str, client: ClientSnapshot) -> ClientSnapshot:
        self.clients[client.id] = (merchant_id, client)
        return client

    def add_line_item(self, item: LineItem, publish: bool = True) -> LineItem:
        with self._lock:
            self.line_items[item.id] = item
        if publish:
            self.feed.publish_insert(item)
        return item

    def next_line_item_id(self) -> int:
        with self._lock:
            taken = set(self.line_items)
            candidate = next(self._ids)
            while candidate in taken:
                candidate = next(self._ids)
            return candidate

    def _check_reads(self) -> None:
        if self.fail_reads:
            raise PersistenceFailure("backend unavailable")

    def fetch_line_items(self, merchant_id: str) -> list[LineItem]:
        self._check_reads()
        with self._lock:
            items = [item for item in self.line_items.values() if item.merchant_id == merchant_id]
        return sorted(items, key=lambda item: item.created_at, reverse=True)

    def fetch_client_snapshots(self, merchant_id: str) -> list[ClientSnapshot]:
        self._check_reads()
        return [client for owner, client in self.clients.values() if owner == merchant_id]

    def fetch_products(self, merchant_id: str) -> list[Product]:
        self._check_reads()
        return [product for owner, product in self.products.values() if owner == merchant_id]

    def batch_update_status(self, line_item_ids: Sequence[int], status: Status) -> None:
        if self.fail_next_update:
            self.fail_next_update = False
            raise PersistenceFailure("status update timed out")
        stamp = now_utc()
        updated: list[LineItem] = []
        with self._lock:
            missing = [item_id for item_id in line_item_ids if item_id not in self.line_items]
            if missing and self.atomic_batch_updates:
                raise PersistenceFailure(f"unknown line items {missing}")
            for item_id in line_item_ids:
                if item_id in missing or item_id in self.drop_update_ids:
                    continue
                item = self.line_items[item_id].with_status(status, stamp)
                self.line_items[item_id] = item
                updated.append(item)
        for item in updated:
            self.feed.publish_update(item)

    def create_notification(
        self,
        client_id: str,
        merchant_id: str,
        title: str,
        message: str,
        meta: dict | None = None,
    ) -> None:
        if self.fail_notifications:
            raise PersistenceFailure("notifications table unavailable")
        self.notifications.append(
            {
                "id": next(self._notification_ids),
                "client_id": client_id,
                "merchant_id": merchant_id,
                "title": title,
                "message": message,
                "meta": dict(meta or {}),
                "read": False,
                "created_at": now_utc().isoformat().replace("+00:00", "Z"),
            }
        )

    def subscribe_to_line_item_changes(
        self,
        merchant_id: str,
        on_insert: ChangeHandler,
        on_update: ChangeHandler,
    ) -> Unsubscribe:
        return self.feed.subscribe(merchant_id, on_insert, on_update)

    def create_line_items(
        self,
        merchant_id: str,
        client_id: str,
        group_id: str,
        lines: Iterable[tuple[str, int]],
    ) -> list[LineItem]:
        stamp = now_utc()
        items = [
            LineItem(
                id=self.next_line_item_id(),
                merchant_id=merchant_id,
                client_id=client_id,
                product_id=product_id,
                quantity=quantity,
                status="pending",
                created_at=stamp,
                updated_at=stamp,
                group_id=group_id,
            )
            for product_id, quantity in lines
        ]
        with self._lock:
            for item in items:
                self.line_items[item.id] = item
        for item in items:
            self.feed.publish_insert(item)
        return items

    def list_notifications(self, client_id: str, unread_only: bool = False) -> list[dict]:
        rows = [n for n in self.notifications if n["client_id"] == client_id]
        if unread_only:
            rows = [n for n in rows if not n["read"]]
        return [dict(n) for n in reversed(rows)]

    def mark_notification_read(self, client_id: str, notification_id: int) -> None:
        for index, row in enumerate(self.notifications):
            if row["id"] == notification_id and row["client_id"] == client_id:
                self.notifications[index] = {**row, "read": True}
                return
        raise NotFound(f"notification {notification_id} not found")


    def reader(self) -> AbstractContextManager[InMemoryOrderStore]:
        return nullcontext(self)
