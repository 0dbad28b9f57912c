from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping

from storefront.domain.orders.errors import EmptyCart, NotFound
from storefront.domain.orders.models import LineItem, Product
from storefront.persistence.store import OrderStore

logger = logging.getLogger(__name__)

# product_id -> quantity, owned by the client's session.
Cart = Mapping[str, int]

_REF_ALPHABET = string.ascii_uppercase + string.digits


def _price_table(products: Iterable[Product]) -> dict[str, Decimal]:
    return {str(product.id): Decimal(product.price) for product in products}


def cart_total(cart: Cart, products: Iterable[Product]) -> Decimal:
    prices = _price_table(products)
    return sum(
        (prices.get(str(product_id), Decimal(0)) * quantity for product_id, quantity in cart.items()),
        Decimal(0),
    )


def cart_count(cart: Cart) -> int:
    return sum(cart.values())


def new_order_reference(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(6))
    return f"CMD-{int(moment.timestamp() * 1000)}-{suffix}"


@dataclass
class CheckoutResult:
    group_id: str
    line_items: list[LineItem]

    @property
    def product_count(self) -> int:
        return len(self.line_items)


def checkout(store: OrderStore, client_id: str, merchant_id: str, cart: Cart) -> CheckoutResult:
    lines = [(str(product_id), int(quantity)) for product_id, quantity in cart.items()]
    if not lines:
        raise EmptyCart("cart is empty")
    bad = [product_id for product_id, quantity in lines if quantity <= 0]
    if bad:
        raise ValueError(f"quantities must be positive: {', '.join(bad)}")

    catalogue = {product.id for product in store.fetch_products(merchant_id)}
    unknown = [product_id for product_id, _ in lines if product_id not in catalogue]
    if unknown:
        raise NotFound(f"products not sold by merchant {merchant_id}: {', '.join(unknown)}")

    group_id = new_order_reference()
    items = store.create_line_items(merchant_id, client_id, group_id, lines)
    logger.info(
        "checkout %s: client=%s merchant=%s products=%d quantity=%d",
        group_id,
        client_id,
        merchant_id,
        len(items),
        cart_count(cart),
    )
    return CheckoutResult(group_id=group_id, line_items=items)
