from __future__ import annotations

import logging
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Iterator, Protocol, Sequence

from sqlalchemy import desc, event, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.domain.orders.errors import NotFound, PartialApplyRisk, PersistenceFailure
from storefront.domain.orders.models import ClientSnapshot, LineItem, Product, Status
from storefront.persistence.feed import ChangeFeed, ChangeHandler, Unsubscribe, get_change_feed
from storefront.persistence.models import ClientModel, LineItemModel, NotificationModel, ProductModel

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class OrderStore(Protocol):
    # True when batch_update_status either updates every id or none.
    atomic_batch_updates: bool

    def fetch_line_items(self, merchant_id: str) -> list[LineItem]:
        ...

    def fetch_client_snapshots(self, merchant_id: str) -> list[ClientSnapshot]:
        ...

    def fetch_products(self, merchant_id: str) -> list[Product]:
        ...

    def batch_update_status(self, line_item_ids: Sequence[int], status: Status) -> None:
        ...

    def create_notification(
        self,
        client_id: str,
        merchant_id: str,
        title: str,
        message: str,
        meta: dict | None = None,
    ) -> None:
        ...

    def subscribe_to_line_item_changes(
        self,
        merchant_id: str,
        on_insert: ChangeHandler,
        on_update: ChangeHandler,
    ) -> Unsubscribe:
        ...

    def create_line_items(
        self,
        merchant_id: str,
        client_id: str,
        group_id: str,
        lines: Iterable[tuple[str, int]],
    ) -> list[LineItem]:
        ...

    def list_notifications(self, client_id: str, unread_only: bool = False) -> list[dict]:
        ...

    def mark_notification_read(self, client_id: str, notification_id: int) -> None:
        ...

    def reader(self) -> AbstractContextManager[OrderStore]:
        """Store for reads that may run from a change handler."""
        ...


def line_item_from_row(row: LineItemModel) -> LineItem:
    return LineItem(
        id=row.id,
        merchant_id=row.merchant_id,
        client_id=row.client_id,
        product_id=row.product_id,
        quantity=row.quantity,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        group_id=row.order_group_id,
    )


def notification_to_dict(row: NotificationModel) -> dict:
    return {
        "id": row.id,
        "client_id": row.client_id,
        "merchant_id": row.merchant_id,
        "title": row.title,
        "message": row.message,
        "meta": row.meta or {},
        "read": row.read,
        "created_at": row.created_at.isoformat().replace("+00:00", "Z"),
    }


class SqlOrderStore:
    """OrderStore over the relational backend.

    Writes join the caller's transaction; change signals are only published
    once that transaction commits.
    """

    atomic_batch_updates = True

    def __init__(self, session: Session, feed: ChangeFeed | None = None):
        self.session = session
        self.feed = feed or get_change_feed()
        self._pending: list[tuple[str, LineItem]] = []
        event.listen(session, "after_commit", self._publish_pending)
        event.listen(session, "after_soft_rollback", self._discard_pending)

    def _publish_pending(self, _session: Session) -> None:
        pending, self._pending = self._pending, []
        for kind, item in pending:
            if kind == "insert":
                self.feed.publish_insert(item)
            else:
                self.feed.publish_update(item)

    def _discard_pending(self, _session: Session, previous_transaction) -> None:
        if previous_transaction.parent is None:
            self._pending = []

    def fetch_line_items(self, merchant_id: str) -> list[LineItem]:
        stmt = (
            select(LineItemModel)
            .where(LineItemModel.merchant_id == merchant_id)
            .order_by(desc(LineItemModel.created_at), LineItemModel.id.asc())
        )
        try:
            rows = list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load line items for merchant {merchant_id}") from exc
        return [line_item_from_row(row) for row in rows]

    def fetch_client_snapshots(self, merchant_id: str) -> list[ClientSnapshot]:
        stmt = select(ClientModel).where(ClientModel.merchant_id == merchant_id)
        try:
            rows = list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load clients for merchant {merchant_id}") from exc
        return [
            ClientSnapshot(id=row.id, name=row.name, email=row.email, phone=row.phone, address=row.address)
            for row in rows
        ]

    def fetch_products(self, merchant_id: str) -> list[Product]:
        stmt = select(ProductModel).where(ProductModel.merchant_id == merchant_id)
        try:
            rows = list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load products for merchant {merchant_id}") from exc
        return [
            Product(
                id=row.id,
                name=row.name,
                price=Decimal(row.price),
                description=row.description,
                image_data=row.image_data,
            )
            for row in rows
        ]

    def batch_update_status(self, line_item_ids: Sequence[int], status: Status) -> None:
        ids = list(line_item_ids)
        if not ids:
            raise PersistenceFailure("no line items to update")
        stamp = now_utc()
        try:
            with self.session.begin_nested():
                result = self.session.execute(
                    update(LineItemModel)
                    .where(LineItemModel.id.in_(ids))
                    .values(status=status, updated_at=stamp)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != len(ids):
                    # Raising inside the savepoint rolls the partial update back.
                    raise PartialApplyRisk(
                        f"status update matched {result.rowcount} of {len(ids)} line items",
                        stale_ids=ids,
                    )
            rows = list(
                self.session.scalars(
                    select(LineItemModel)
                    .where(LineItemModel.id.in_(ids))
                    .execution_options(populate_existing=True)
                ).all()
            )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to update status of line items {ids}") from exc

        for row in rows:
            self._pending.append(("update", line_item_from_row(row)))

    def create_notification(
        self,
        client_id: str,
        merchant_id: str,
        title: str,
        message: str,
        meta: dict | None = None,
    ) -> None:
        try:
            with self.session.begin_nested():
                self.session.add(
                    NotificationModel(
                        client_id=client_id,
                        merchant_id=merchant_id,
                        title=title,
                        message=message,
                        meta=meta or {},
                        read=False,
                        created_at=now_utc(),
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to notify client {client_id}") from exc

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
        rows = [
            LineItemModel(
                merchant_id=merchant_id,
                client_id=client_id,
                product_id=product_id,
                quantity=quantity,
                status="pending",
                order_group_id=group_id,
                created_at=stamp,
                updated_at=stamp,
            )
            for product_id, quantity in lines
        ]
        try:
            with self.session.begin_nested():
                self.session.add_all(rows)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to record checkout {group_id}") from exc

        items = [line_item_from_row(row) for row in rows]
        self._pending.extend(("insert", item) for item in items)
        return items

    def list_notifications(self, client_id: str, unread_only: bool = False) -> list[dict]:
        stmt = (
            select(NotificationModel)
            .where(NotificationModel.client_id == client_id)
            .order_by(desc(NotificationModel.created_at), desc(NotificationModel.id))
        )
        if unread_only:
            stmt = stmt.where(NotificationModel.read.is_(False))
        try:
            rows = list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load notifications for client {client_id}") from exc
        return [notification_to_dict(row) for row in rows]

    def mark_notification_read(self, client_id: str, notification_id: int) -> None:
        try:
            row = self.session.get(NotificationModel, notification_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to load notification {notification_id}") from exc
        if row is None or row.client_id != client_id:
            raise NotFound(f"notification {notification_id} not found")
        row.read = True
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to mark notification {notification_id} as read") from exc

    @contextmanager
    def reader(self) -> Iterator[SqlOrderStore]:
        # Change signals fire from after_commit, where this session cannot
        # emit SQL; read through a separate session on the same engine.
        session = Session(bind=self.session.get_bind(), autoflush=False, expire_on_commit=False)
        try:
            yield SqlOrderStore(session, feed=self.feed)
        finally:
            session.close()
