from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from storefront.domain.orders.aggregator import aggregate
from storefront.domain.orders.errors import NotFound
from storefront.domain.orders.models import CANCELLED, DELIVERED, PENDING, PROCESSING, STATUSES, OrderGroup, Status

BADGE_LABELS: dict[Status, str] = {
    PENDING: "En attente",
    PROCESSING: "En cours",
    DELIVERED: "Livrée",
    CANCELLED: "Annulée",
}

ALL_STATUSES = "all"


@dataclass
class OrderPage:
    groups: list[OrderGroup]
    page: int
    pages: int
    total: int
    status_filter: str = ALL_STATUSES


@dataclass
class OrderStats:
    total_orders: int
    total_revenue: Decimal
    by_status: dict[str, int] = field(default_factory=dict)


def load_order_groups(store, merchant_id: str) -> list[OrderGroup]:
    return aggregate(
        store.fetch_line_items(merchant_id),
        store.fetch_client_snapshots(merchant_id),
        store.fetch_products(merchant_id),
    )


def find_group(store, merchant_id: str, group_id: str) -> OrderGroup:
    for group in load_order_groups(store, merchant_id):
        if group.group_id == group_id:
            return group
    raise NotFound(f"order group {group_id} not found for merchant {merchant_id}")


def filter_by_status(groups: Sequence[OrderGroup], status: str = ALL_STATUSES) -> list[OrderGroup]:
    if status == ALL_STATUSES:
        return list(groups)
    if status not in STATUSES:
        raise ValueError(f"unknown status filter: {status}")
    return [group for group in groups if group.status == status]


def paginate(
    groups: Sequence[OrderGroup],
    page: int = 1,
    page_size: int = 8,
    status_filter: str = ALL_STATUSES,
) -> OrderPage:
    if page_size < 1:
        raise ValueError("page_size must be positive")
    pages = max(1, math.ceil(len(groups) / page_size))
    current = min(max(page, 1), pages)
    start = (current - 1) * page_size
    return OrderPage(
        groups=list(groups[start : start + page_size]),
        page=current,
        pages=pages,
        total=len(groups),
        status_filter=status_filter,
    )


def order_stats(groups: Sequence[OrderGroup]) -> OrderStats:
    by_status = {status: 0 for status in STATUSES}
    for group in groups:
        by_status[group.status] += 1
    return OrderStats(
        total_orders=len(groups),
        total_revenue=sum((group.total_amount for group in groups), Decimal(0)),
        by_status=by_status,
    )
