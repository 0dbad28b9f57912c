from __future__ import annotations

from decimal import Decimal

import pytest

from storefront.domain.orders.checkout import checkout
from storefront.domain.orders.coordinator import OrderStatusCoordinator
from storefront.domain.orders.errors import NotFound
from storefront.domain.orders.live import OrderFeed
from storefront.persistence.feed import ChangeFeed
from storefront.persistence.models import ClientModel, ProductModel
from storefront.persistence.store import SqlOrderStore


def test_feed_reaggregates_on_insert(memory_store):
    with OrderFeed(memory_store, "M1") as feed:
        assert feed.groups == []
        assert memory_store.feed.subscriber_count("M1") == 1

        result = checkout(memory_store, "C1", "M1", {"P1": 1, "P2": 1})

        assert feed.new_order_alert is True
        assert [g.group_id for g in feed.groups] == [result.group_id]
        assert feed.get(result.group_id).total_items == 2

        feed.acknowledge()
        assert feed.new_order_alert is False

    assert memory_store.feed.subscriber_count("M1") == 0


def test_feed_follows_status_updates(memory_store):
    result = checkout(memory_store, "C1", "M1", {"P1": 3})
    feed = OrderFeed(memory_store, "M1")
    feed.open()

    OrderStatusCoordinator(memory_store).transition(feed.get(result.group_id), "processing")

    assert feed.get(result.group_id).status == "processing"
    assert feed.new_order_alert is False
    feed.close()


def test_feed_ignores_other_merchants(memory_store):
    feed = OrderFeed(memory_store, "M2")
    feed.open()
    refreshes = feed.refresh_count

    checkout(memory_store, "C1", "M1", {"P1": 1})

    assert feed.refresh_count == refreshes
    assert feed.groups == []
    feed.close()


def test_failed_refresh_keeps_previous_snapshot(memory_store):
    result = checkout(memory_store, "C1", "M1", {"P1": 1})
    feed = OrderFeed(memory_store, "M1")
    feed.open()

    memory_store.fail_reads = True
    groups = feed.refresh()

    assert [g.group_id for g in groups] == [result.group_id]
    assert feed.last_error == "backend unavailable"
    with pytest.raises(NotFound):
        feed.get("CMD-unknown")
    feed.close()


def test_feed_over_sql_store_sees_committed_changes(session):
    merchant_id = "FEED-M1"
    session.add(ProductModel(id=f"{merchant_id}-P1", merchant_id=merchant_id, name="Riz", price=Decimal("100")))
    session.add(ClientModel(id=f"{merchant_id}-C1", merchant_id=merchant_id, name="Awa"))
    session.commit()

    store = SqlOrderStore(session, feed=ChangeFeed())
    with OrderFeed(store, merchant_id) as feed:
        assert feed.groups == []

        result = checkout(store, f"{merchant_id}-C1", merchant_id, {f"{merchant_id}-P1": 2})
        assert feed.groups == []

        session.commit()

        assert feed.new_order_alert is True
        assert feed.last_error is None
        group = feed.get(result.group_id)
        assert group.total_amount == Decimal("200")
        assert group.client.name == "Awa"

        OrderStatusCoordinator(store).transition(group, "processing")
        session.commit()

        assert feed.last_error is None
        assert feed.get(result.group_id).status == "processing"
