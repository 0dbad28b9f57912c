from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.domain.orders.queries import load_order_groups, order_stats
from storefront.persistence.models import ClientModel, LineItemModel, ProductModel
from storefront.persistence.store import SqlOrderStore

DEMO_MERCHANT_ID = "M-DEMO"
DEMO_DAY = date(2024, 1, 1)

PRODUCTS = [
    {"id": "P-RICE", "name": "Riz parfumé 5kg", "price": Decimal("4500"), "description": "Sac de riz"},
    {"id": "P-OIL", "name": "Huile 1L", "price": Decimal("1200"), "description": "Huile végétale"},
    {"id": "P-SUGAR", "name": "Sucre 1kg", "price": Decimal("800"), "description": "Sucre en poudre"},
]

CLIENTS = [
    {"id": "C-AMINATA", "name": "Aminata Diallo", "email": "aminata@example.com", "phone": "+221770000001"},
    {"id": "C-KOFFI", "name": None, "email": "koffi@example.com", "phone": None},
]

# (client, group id or None for legacy rows, product, qty, status, offset seconds)
LINE_ITEMS = [
    ("C-AMINATA", "CMD-1704103200000-DEMO01", "P-RICE", 2, "pending", 0),
    ("C-AMINATA", "CMD-1704103200000-DEMO01", "P-OIL", 3, "pending", 1),
    ("C-KOFFI", "CMD-1704106800000-DEMO02", "P-SUGAR", 5, "processing", 3600),
    ("C-KOFFI", "CMD-1704106800000-DEMO02", "P-OIL", 1, "processing", 3601),
    ("C-AMINATA", None, "P-SUGAR", 1, "delivered", 7200),
    ("C-AMINATA", None, "P-RICE", 1, "delivered", 7230),
]


def _dt(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


def _summary(session: Session, seeded_now: bool) -> dict[str, Any]:
    groups = load_order_groups(SqlOrderStore(session), DEMO_MERCHANT_ID)
    stats = order_stats(groups)
    return {
        "merchant_id": DEMO_MERCHANT_ID,
        "seeded_now": seeded_now,
        "order_groups": [group.group_id for group in groups],
        "total_revenue": str(stats.total_revenue),
        "by_status": stats.by_status,
    }


def seed_demo_merchant(session: Session) -> dict[str, Any]:
    existing = session.scalar(select(ProductModel).where(ProductModel.merchant_id == DEMO_MERCHANT_ID).limit(1))
    if existing is not None:
        return _summary(session, seeded_now=False)

    for product in PRODUCTS:
        session.add(ProductModel(merchant_id=DEMO_MERCHANT_ID, **product))
    for client in CLIENTS:
        session.add(ClientModel(merchant_id=DEMO_MERCHANT_ID, **client))

    base = _dt(DEMO_DAY, 10)
    for client_id, group_id, product_id, qty, status, offset in LINE_ITEMS:
        created = base + timedelta(seconds=offset)
        session.add(
            LineItemModel(
                merchant_id=DEMO_MERCHANT_ID,
                client_id=client_id,
                product_id=product_id,
                quantity=qty,
                status=status,
                order_group_id=group_id,
                created_at=created,
                updated_at=created,
            )
        )
    session.flush()
    return _summary(session, seeded_now=True)
