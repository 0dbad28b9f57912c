from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.domain.orders.coordinator import OrderStatusCoordinator
from storefront.domain.orders.errors import NotFound, PartialApplyRisk, PersistenceFailure
from storefront.domain.orders.queries import find_group, load_order_groups
from storefront.persistence.feed import ChangeFeed
from storefront.persistence.models import ClientModel, LineItemModel, ProductModel
from storefront.persistence.store import SqlOrderStore


def _seed(session, merchant_id: str) -> None:
    session.add(ProductModel(id=f"{merchant_id}-P1", merchant_id=merchant_id, name="Riz", price=Decimal("100")))
    session.add(ProductModel(id=f"{merchant_id}-P2", merchant_id=merchant_id, name="Huile", price=Decimal("50")))
    session.add(ClientModel(id=f"{merchant_id}-C1", merchant_id=merchant_id, name="Awa"))
    for product, qty, second in ((f"{merchant_id}-P1", 2, 0), (f"{merchant_id}-P2", 1, 30)):
        created = datetime(2024, 1, 1, 10, 0, second, tzinfo=timezone.utc)
        session.add(
            LineItemModel(
                merchant_id=merchant_id,
                client_id=f"{merchant_id}-C1",
                product_id=product,
                quantity=qty,
                status="pending",
                created_at=created,
                updated_at=created,
            )
        )
    session.flush()


def test_sql_store_aggregates_legacy_rows(session):
    _seed(session, "SQL-M1")

    [group] = load_order_groups(SqlOrderStore(session), "SQL-M1")

    assert group.total_items == 2
    assert group.total_quantity == 3
    assert group.total_amount == Decimal("250")
    assert group.status == "pending"
    assert group.client.name == "Awa"


def test_sql_transition_updates_rows_and_notifies_after_commit(session):
    _seed(session, "SQL-M2")
    feed = ChangeFeed()
    updates = []
    feed.subscribe("SQL-M2", lambda _item: None, updates.append)
    store = SqlOrderStore(session, feed=feed)
    [group] = load_order_groups(store, "SQL-M2")

    OrderStatusCoordinator(store).transition(group, "processing")
    assert updates == []

    session.commit()

    assert sorted(item.id for item in updates) == sorted(group.line_item_ids)
    assert {item.status for item in updates} == {"processing"}
    rows = store.list_notifications("SQL-M2-C1")
    assert len(rows) == 1
    assert rows[0]["message"].endswith("en cours de préparation")
    assert rows[0]["read"] is False


def test_sql_batch_update_is_all_or_nothing(session):
    _seed(session, "SQL-M3")
    store = SqlOrderStore(session)
    [group] = load_order_groups(store, "SQL-M3")

    with pytest.raises(PartialApplyRisk):
        store.batch_update_status(group.line_item_ids + [987654], "processing")

    [fresh] = load_order_groups(store, "SQL-M3")
    assert [item.status for item in fresh.line_items] == ["pending", "pending"]


def test_sql_checkout_rows_carry_group_id(session):
    _seed(session, "SQL-M4")
    feed = ChangeFeed()
    inserted = []
    feed.subscribe("SQL-M4", inserted.append, lambda _item: None)
    store = SqlOrderStore(session, feed=feed)

    items = store.create_line_items("SQL-M4", "SQL-M4-C1", "CMD-1-ABCDEF", [("SQL-M4-P1", 4)])
    session.commit()

    assert [item.id for item in inserted] == [item.id for item in items]
    group = find_group(store, "SQL-M4", "CMD-1-ABCDEF")
    assert group.total_amount == Decimal("400")


def test_sql_rollback_discards_pending_signals(session):
    _seed(session, "SQL-M5")
    feed = ChangeFeed()
    inserted = []
    feed.subscribe("SQL-M5", inserted.append, lambda _item: None)
    store = SqlOrderStore(session, feed=feed)

    store.create_line_items("SQL-M5", "SQL-M5-C1", "CMD-2-ABCDEF", [("SQL-M5-P1", 1)])
    session.rollback()
    session.commit()

    assert inserted == []


def test_sql_mark_notification_read(session):
    store = SqlOrderStore(session)
    store.create_notification("SQL-C9", "SQL-M9", "Title", "Message")
    [row] = store.list_notifications("SQL-C9")

    store.mark_notification_read("SQL-C9", row["id"])

    assert store.list_notifications("SQL-C9", unread_only=True) == []
    with pytest.raises(NotFound):
        store.mark_notification_read("SOMEONE-ELSE", row["id"])


def test_sql_mark_notification_read_wraps_flush_errors(session, monkeypatch):
    store = SqlOrderStore(session)
    store.create_notification("SQL-C10", "SQL-M10", "Title", "Message")
    [row] = store.list_notifications("SQL-C10")

    def broken_flush(*_args, **_kwargs):
        raise OperationalError("UPDATE notifications", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "flush", broken_flush)

    with pytest.raises(PersistenceFailure):
        store.mark_notification_read("SQL-C10", row["id"])
