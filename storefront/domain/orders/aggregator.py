"""Fold flat line-item rows into the order groups a merchant works with.

Every call is a pure function of its inputs: groups, totals and statuses are
rebuilt from scratch so a re-run over the same snapshot yields equal output.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from storefront.domain.orders.models import (
    CANCELLED,
    DELIVERED,
    PENDING,
    PROCESSING,
    ClientSnapshot,
    LineItem,
    OrderGroup,
    Product,
    Status,
)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def group_key(item: LineItem) -> str:
    if item.group_id and item.group_id.strip():
        return item.group_id
    # Legacy rows written before checkout stamped a group id: bucket by
    # client and creation minute.
    minute = _as_utc(item.created_at).replace(second=0, microsecond=0)
    return f"CMD-{int(minute.timestamp() * 1000)}-{item.client_id}"


def derive_group_status(statuses: Iterable[Status]) -> Status:
    seen = list(statuses)
    if CANCELLED in seen:
        return CANCELLED
    if seen and all(status == DELIVERED for status in seen):
        return DELIVERED
    if PROCESSING in seen:
        return PROCESSING
    return PENDING


def aggregate(
    line_items: Iterable[LineItem],
    clients: Iterable[ClientSnapshot],
    products: Iterable[Product],
) -> list[OrderGroup]:
    clients_by_id = {client.id: client for client in clients}
    prices = {product.id: Decimal(product.price) for product in products}

    groups: dict[str, OrderGroup] = {}
    for item in line_items:
        key = group_key(item)
        created = _as_utc(item.created_at)
        touched = max(created, _as_utc(item.updated_at)) if item.updated_at else created

        if item.product_id not in prices:
            logger.warning(
                "line item %s references unknown product %s; priced at 0",
                item.id,
                item.product_id,
            )

        group = groups.get(key)
        if group is None:
            client = clients_by_id.get(item.client_id)
            if client is None:
                logger.warning("order group %s references unknown client %s", key, item.client_id)
            group = OrderGroup(
                group_id=key,
                merchant_id=item.merchant_id,
                client_id=item.client_id,
                client=client,
                created_at=created,
                updated_at=touched,
                status=PENDING,
                prices=prices,
            )
            groups[key] = group
        elif item.client_id != group.client_id:
            logger.warning(
                "order group %s mixes clients %s and %s",
                key,
                group.client_id,
                item.client_id,
            )

        group.line_items.append(item)
        group.created_at = min(group.created_at, created)
        group.updated_at = max(group.updated_at, touched)

    for group in groups.values():
        group.status = derive_group_status(item.status for item in group.line_items)

    return sorted(groups.values(), key=lambda g: g.created_at, reverse=True)
