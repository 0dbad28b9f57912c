from __future__ import annotations

import logging
from datetime import datetime, timezone

from storefront.core.config import get_settings
from storefront.domain.orders.errors import InvalidTransition, PartialApplyRisk, PersistenceFailure
from storefront.domain.orders.models import (
    CANCELLED,
    DELIVERED,
    PENDING,
    PROCESSING,
    STATUSES,
    OrderGroup,
    Status,
)
from storefront.domain.orders.queries import find_group
from storefront.persistence.store import OrderStore

logger = logging.getLogger(__name__)

TRANSITIONS: dict[Status, tuple[Status, ...]] = {
    PENDING: (PROCESSING, CANCELLED),
    PROCESSING: (DELIVERED, CANCELLED),
    DELIVERED: (),
    CANCELLED: (),
}

STATUS_LABELS: dict[Status, str] = {
    PENDING: "en attente",
    PROCESSING: "en cours de préparation",
    DELIVERED: "livrée",
    CANCELLED: "annulée",
}


def allowed_transitions(status: Status) -> tuple[Status, ...]:
    return TRANSITIONS.get(status, ())


def is_terminal(status: Status) -> bool:
    return not allowed_transitions(status)


def status_message(group_id: str, status: Status) -> str:
    return f"Votre commande {group_id} est maintenant {STATUS_LABELS.get(status, status)}"


class OrderStatusCoordinator:
    """Apply a merchant's status change to every line item of an order group.

    The batch update is the authoritative fact: it either lands on every line
    item or the call raises and the group is left untouched. The client
    notification that follows is best effort.
    """

    def __init__(self, store: OrderStore, notification_title: str | None = None):
        self.store = store
        self.notification_title = notification_title or get_settings().notification_title

    def transition(self, group: OrderGroup, target_status: Status) -> OrderGroup:
        if target_status not in STATUSES:
            raise InvalidTransition(group.status, target_status, f"unknown status: {target_status}")
        if not group.line_items:
            raise InvalidTransition(group.status, target_status, f"order group {group.group_id} has no line items")
        if target_status not in allowed_transitions(group.status):
            raise InvalidTransition(group.status, target_status)

        ids = group.line_item_ids
        self.store.batch_update_status(ids, target_status)
        if not self.store.atomic_batch_updates:
            self._verify_applied(group, target_status)

        stamp = datetime.now(timezone.utc)
        previous = group.status
        group.line_items = [item.with_status(target_status, stamp) for item in group.line_items]
        group.status = target_status
        group.updated_at = max(group.updated_at, stamp)
        logger.info(
            "order group %s moved %s -> %s (%d line items)",
            group.group_id,
            previous,
            target_status,
            len(ids),
        )

        self._notify(group, target_status)
        return group

    def advance(self, merchant_id: str, group_id: str, target_status: Status) -> OrderGroup:
        group = find_group(self.store, merchant_id, group_id)
        return self.transition(group, target_status)

    def _verify_applied(self, group: OrderGroup, target_status: Status) -> None:
        wanted = set(group.line_item_ids)
        try:
            fresh = [item for item in self.store.fetch_line_items(group.merchant_id) if item.id in wanted]
        except PersistenceFailure as exc:
            raise PartialApplyRisk(
                f"could not confirm status of order group {group.group_id}",
                stale_ids=sorted(wanted),
            ) from exc
        applied = {item.id for item in fresh if item.status == target_status}
        stale = sorted(wanted - applied)
        if stale:
            logger.error(
                "order group %s only partially moved to %s; stale line items %s",
                group.group_id,
                target_status,
                stale,
            )
            raise PartialApplyRisk(
                f"order group {group.group_id} was only partially updated to {target_status}",
                stale_ids=stale,
            )

    def _notify(self, group: OrderGroup, status: Status) -> None:
        try:
            self.store.create_notification(
                client_id=group.client_id,
                merchant_id=group.merchant_id,
                title=self.notification_title,
                message=status_message(group.group_id, status),
                meta={"group_id": group.group_id, "status": status},
            )
        except Exception:
            logger.exception("notification for order group %s failed; status change kept", group.group_id)

