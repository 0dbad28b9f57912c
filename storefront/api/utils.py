from __future__ import annotations

from datetime import datetime, timezone

from storefront.domain.orders.coordinator import STATUS_LABELS, allowed_transitions
from storefront.domain.orders.models import ClientSnapshot, LineItem, OrderGroup
from storefront.domain.orders.queries import BADGE_LABELS, OrderPage, OrderStats


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def client_to_dict(client: ClientSnapshot | None) -> dict | None:
    if client is None:
        return None
    return {
        "id": client.id,
        "name": client.display_name,
        "email": client.email,
        "phone": client.phone,
        "address": client.address,
    }


def line_item_to_dict(item: LineItem) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "status": item.status,
        "created_at": iso(item.created_at),
        "updated_at": iso(item.updated_at),
    }


def group_to_dict(group: OrderGroup, detail: bool = False) -> dict:
    payload = {
        "group_id": group.group_id,
        "short_ref": group.short_ref,
        "merchant_id": group.merchant_id,
        "client_id": group.client_id,
        "client": client_to_dict(group.client),
        "status": group.status,
        "status_label": BADGE_LABELS[group.status],
        "created_at": iso(group.created_at),
        "updated_at": iso(group.updated_at),
        "total_items": group.total_items,
        "total_quantity": group.total_quantity,
        "total_amount": str(group.total_amount),
    }
    if detail:
        payload["line_items"] = [line_item_to_dict(item) for item in group.line_items]
        payload["allowed_transitions"] = [
            {"status": status, "label": STATUS_LABELS[status]} for status in allowed_transitions(group.status)
        ]
    return payload


def page_to_dict(page: OrderPage) -> dict:
    return {
        "status": page.status_filter,
        "page": page.page,
        "pages": page.pages,
        "count": page.total,
        "groups": [group_to_dict(group) for group in page.groups],
    }


def stats_to_dict(stats: OrderStats) -> dict:
    return {
        "total_orders": stats.total_orders,
        "total_revenue": str(stats.total_revenue),
        "by_status": dict(stats.by_status),
    }
