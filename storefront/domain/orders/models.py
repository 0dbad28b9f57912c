from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Literal

Status = Literal["pending", "processing", "delivered", "cancelled"]

PENDING: Status = "pending"
PROCESSING: Status = "processing"
DELIVERED: Status = "delivered"
CANCELLED: Status = "cancelled"

STATUSES: tuple[Status, ...] = (PENDING, PROCESSING, DELIVERED, CANCELLED)


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    description: str = ""
    image_data: str | None = None


@dataclass(frozen=True)
class ClientSnapshot:
    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@", 1)[0]
        return f"Client #{self.id[-4:]}"


@dataclass(frozen=True)
class LineItem:
    id: int
    merchant_id: str
    client_id: str
    product_id: str
    quantity: int
    status: Status
    created_at: datetime
    updated_at: datetime | None = None
    group_id: str | None = None

    def with_status(self, status: Status, updated_at: datetime) -> LineItem:
        return replace(self, status=status, updated_at=updated_at)


@dataclass
class OrderGroup:
    group_id: str
    merchant_id: str
    client_id: str
    client: ClientSnapshot | None
    created_at: datetime
    updated_at: datetime
    status: Status
    line_items: list[LineItem] = field(default_factory=list)
    prices: dict[str, Decimal] = field(default_factory=dict, repr=False)

    @property
    def total_items(self) -> int:
        return len(self.line_items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.line_items)

    @property
    def total_amount(self) -> Decimal:
        return sum(
            (item.quantity * self.prices.get(item.product_id, Decimal(0)) for item in self.line_items),
            Decimal(0),
        )

    @property
    def line_item_ids(self) -> list[int]:
        return [item.id for item in self.line_items]

    @property
    def short_ref(self) -> str:
        return self.group_id[-8:]
