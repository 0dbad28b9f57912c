from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.api.utils import group_to_dict, page_to_dict, stats_to_dict
from storefront.core.config import get_settings
from storefront.core.security import Actor, get_actor, require_merchant
from storefront.domain.orders.coordinator import OrderStatusCoordinator
from storefront.domain.orders.models import Status
from storefront.domain.orders.queries import ALL_STATUSES, filter_by_status, find_group, load_order_groups, order_stats, paginate
from storefront.domain.orders.slips import slip_from_group
from storefront.persistence.pg import commit_or_fail, get_session
from storefront.persistence.store import SqlOrderStore

router = APIRouter(tags=["orders"])


class StatusChangeRequest(BaseModel):
    status: Status


@router.get("/merchants/{merchant_id}/orders")
def list_orders(
    merchant_id: str,
    status: str = Query(default=ALL_STATUSES),
    page: int = Query(default=1, ge=1),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_merchant(actor, merchant_id)
    groups = load_order_groups(SqlOrderStore(session), merchant_id)
    try:
        filtered = filter_by_status(groups, status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return page_to_dict(paginate(filtered, page=page, page_size=get_settings().orders_page_size, status_filter=status))


@router.get("/merchants/{merchant_id}/orders/stats")
def get_order_stats(
    merchant_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_merchant(actor, merchant_id)
    groups = load_order_groups(SqlOrderStore(session), merchant_id)
    return stats_to_dict(order_stats(groups))


@router.get("/merchants/{merchant_id}/orders/{group_id}")
def get_order(
    merchant_id: str,
    group_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_merchant(actor, merchant_id)
    group = find_group(SqlOrderStore(session), merchant_id, group_id)
    return group_to_dict(group, detail=True)


@router.get("/merchants/{merchant_id}/orders/{group_id}/slip")
def get_delivery_note(
    merchant_id: str,
    group_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_merchant(actor, merchant_id)
    store = SqlOrderStore(session)
    group = find_group(store, merchant_id, group_id)
    slip = slip_from_group(group, store.fetch_products(merchant_id))
    return {"currency": get_settings().currency, "slip": slip.to_dict()}


@router.post("/merchants/{merchant_id}/orders/{group_id}/status")
def change_order_status(
    merchant_id: str,
    group_id: str,
    body: StatusChangeRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_merchant(actor, merchant_id)
    group = OrderStatusCoordinator(SqlOrderStore(session)).advance(merchant_id, group_id, body.status)
    commit_or_fail(session)
    return group_to_dict(group, detail=True)
