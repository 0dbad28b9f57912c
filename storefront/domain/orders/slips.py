"""Data behind printable order slips and delivery notes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from storefront.domain.orders.checkout import Cart
from storefront.domain.orders.models import PENDING, OrderGroup, Product, Status

FALLBACK_PRODUCT_NAME = "Produit"


@dataclass(frozen=True)
class SlipLine:
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class OrderSlip:
    id: str
    client_name: str
    merchant_id: str
    date: str
    status: Status
    items: list[SlipLine] = field(default_factory=list)
    reference: str | None = None
    tax: Decimal | None = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.total for line in self.items), Decimal(0))

    @property
    def total(self) -> Decimal:
        return self.subtotal + (self.tax or Decimal(0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "client_name": self.client_name,
            "merchant_id": self.merchant_id,
            "date": self.date,
            "status": self.status,
            "items": [
                {
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                    "total": str(line.total),
                }
                for line in self.items
            ],
            "subtotal": str(self.subtotal),
            "tax": str(self.tax) if self.tax is not None else None,
            "total": str(self.total),
        }


def _slip_line(product: Product | None, quantity: int) -> SlipLine:
    if product is None:
        return SlipLine(name=FALLBACK_PRODUCT_NAME, quantity=quantity, unit_price=Decimal(0))
    return SlipLine(name=product.name, quantity=quantity, unit_price=Decimal(product.price))


def _stamp(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def build_order_slip(
    client_name: str,
    merchant_id: str,
    cart: Cart,
    products: Iterable[Product],
    now: datetime | None = None,
) -> OrderSlip:
    by_id = {str(product.id): product for product in products}
    moment = _stamp(now)
    return OrderSlip(
        id=f"BON-{int(moment.timestamp() * 1000)}",
        client_name=client_name,
        merchant_id=merchant_id,
        date=moment.isoformat().replace("+00:00", "Z"),
        status=PENDING,
        items=[_slip_line(by_id.get(str(pid)), quantity) for pid, quantity in cart.items()],
    )


def slip_from_group(group: OrderGroup, products: Iterable[Product], now: datetime | None = None) -> OrderSlip:
    by_id = {str(product.id): product for product in products}
    moment = _stamp(now)
    client_name = group.client.display_name if group.client else f"Client #{group.client_id[-4:]}"
    return OrderSlip(
        id=f"BON-{int(moment.timestamp() * 1000)}",
        reference=group.short_ref,
        client_name=client_name,
        merchant_id=group.merchant_id,
        date=moment.isoformat().replace("+00:00", "Z"),
        status=group.status,
        items=[_slip_line(by_id.get(item.product_id), item.quantity) for item in group.line_items],
    )
