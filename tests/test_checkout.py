from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront.domain.orders.checkout import cart_count, cart_total, checkout, new_order_reference
from storefront.domain.orders.errors import EmptyCart, NotFound
from storefront.domain.orders.models import Product
from storefront.domain.orders.queries import load_order_groups
from storefront.domain.orders.slips import build_order_slip, slip_from_group

PRODUCTS = [Product(id="P1", name="Riz", price=Decimal("100")), Product(id="P2", name="Huile", price=Decimal("50"))]


def test_cart_totals_price_missing_products_at_zero():
    cart = {"P1": 2, "P2": 1, "GONE": 4}
    assert cart_total(cart, PRODUCTS) == Decimal("250")
    assert cart_count(cart) == 7
    assert cart_total({}, PRODUCTS) == Decimal(0)


def test_order_reference_format():
    ref = new_order_reference(datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert re.fullmatch(r"CMD-1704067200000-[A-Z0-9]{6}", ref)


def test_checkout_stamps_one_group_id_on_every_line_item(memory_store):
    inserted = []
    memory_store.subscribe_to_line_item_changes("M1", inserted.append, lambda _item: None)

    result = checkout(memory_store, "C1", "M1", {"P1": 2, "P2": 1})

    assert result.product_count == 2
    assert {item.group_id for item in result.line_items} == {result.group_id}
    assert all(item.status == "pending" for item in result.line_items)
    assert [item.id for item in inserted] == [item.id for item in result.line_items]

    [group] = load_order_groups(memory_store, "M1")
    assert group.group_id == result.group_id
    assert group.total_amount == Decimal("250")
    assert group.status == "pending"


def test_two_rapid_checkouts_stay_separate(memory_store):
    first = checkout(memory_store, "C1", "M1", {"P1": 1})
    second = checkout(memory_store, "C1", "M1", {"P2": 1})

    groups = load_order_groups(memory_store, "M1")

    assert first.group_id != second.group_id
    assert len(groups) == 2


def test_empty_cart_is_rejected(memory_store):
    with pytest.raises(EmptyCart):
        checkout(memory_store, "C1", "M1", {})


def test_non_positive_quantity_is_rejected(memory_store):
    with pytest.raises(ValueError):
        checkout(memory_store, "C1", "M1", {"P1": 0})
    assert memory_store.line_items == {}


def test_unknown_product_is_rejected(memory_store):
    with pytest.raises(NotFound):
        checkout(memory_store, "C1", "M1", {"P1": 1, "ELSEWHERE": 1})
    assert memory_store.line_items == {}


def test_order_slip_from_cart():
    now = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
    slip = build_order_slip("Awa", "M1", {"P1": 2, "GONE": 3}, PRODUCTS, now=now)

    assert slip.id == f"BON-{int(now.timestamp() * 1000)}"
    assert slip.date == "2024-01-01T09:30:00Z"
    assert slip.status == "pending"
    assert [(line.name, line.quantity, line.total) for line in slip.items] == [
        ("Riz", 2, Decimal("200")),
        ("Produit", 3, Decimal("0")),
    ]
    assert slip.subtotal == slip.total == Decimal("200")
    assert slip.to_dict()["total"] == "200"


def test_delivery_note_from_group(memory_store):
    result = checkout(memory_store, "C1", "M1", {"P1": 1, "P2": 2})
    [group] = load_order_groups(memory_store, "M1")

    slip = slip_from_group(group, PRODUCTS)

    assert slip.reference == result.group_id[-8:]
    assert slip.client_name == "Awa"
    assert slip.total == group.total_amount == Decimal("200")
