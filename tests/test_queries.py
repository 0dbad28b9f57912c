from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.domain.orders.aggregator import aggregate
from storefront.domain.orders.models import Product
from storefront.domain.orders.queries import BADGE_LABELS, filter_by_status, order_stats, paginate

PRODUCTS = [Product(id="P1", name="Riz", price=Decimal("100"))]


@pytest.fixture()
def build_groups(make_item, base_time):
    def _groups(statuses):
        items = [
            make_item(i, status=status, group_id=f"G{i}", created_at=base_time + timedelta(minutes=i))
            for i, status in enumerate(statuses, start=1)
        ]
        return aggregate(items, [], PRODUCTS)

    return _groups


def test_filter_by_status(build_groups):
    groups = build_groups(["pending", "processing", "pending", "delivered"])

    assert len(filter_by_status(groups)) == 4
    assert [g.group_id for g in filter_by_status(groups, "pending")] == ["G3", "G1"]
    with pytest.raises(ValueError):
        filter_by_status(groups, "shipped")


def test_paginate_clamps_pages(build_groups):
    groups = build_groups(["pending"] * 10)

    first = paginate(groups, page=1, page_size=8)
    assert (first.page, first.pages, first.total, len(first.groups)) == (1, 2, 10, 8)

    last = paginate(groups, page=5, page_size=8)
    assert (last.page, len(last.groups)) == (2, 2)

    empty = paginate([], page=3)
    assert (empty.page, empty.pages, empty.groups) == (1, 1, [])


def test_order_stats(build_groups):
    stats = order_stats(build_groups(["pending", "processing", "delivered", "cancelled", "pending"]))

    assert stats.total_orders == 5
    assert stats.total_revenue == Decimal("500")
    assert stats.by_status == {"pending": 2, "processing": 1, "delivered": 1, "cancelled": 1}


def test_badge_labels():
    assert BADGE_LABELS["delivered"] == "Livrée"
    assert BADGE_LABELS["processing"] == "En cours"
