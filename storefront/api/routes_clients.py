from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.api.utils import line_item_to_dict
from storefront.core.config import get_settings
from storefront.core.security import Actor, get_actor, require_client
from storefront.domain.orders.checkout import cart_count, cart_total, checkout
from storefront.domain.orders.errors import EmptyCart
from storefront.domain.orders.slips import build_order_slip
from storefront.persistence.pg import commit_or_fail, get_session
from storefront.persistence.store import SqlOrderStore

router = APIRouter(tags=["clients"])


class CheckoutRequest(BaseModel):
    client_name: str | None = None
    cart: dict[str, int] = Field(default_factory=dict)


@router.post("/merchants/{merchant_id}/checkout/preview")
def preview_checkout(
    merchant_id: str,
    body: CheckoutRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    if actor.type != "client":
        raise HTTPException(status_code=403, detail="only clients can check out")
    products = SqlOrderStore(session).fetch_products(merchant_id)
    slip = build_order_slip(body.client_name or "Client", merchant_id, body.cart, products)
    return {
        "currency": get_settings().currency,
        "count": cart_count(body.cart),
        "total": str(cart_total(body.cart, products)),
        "slip": slip.to_dict(),
    }


@router.post("/merchants/{merchant_id}/checkout", status_code=201)
def place_order(
    merchant_id: str,
    body: CheckoutRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    if actor.type != "client":
        raise HTTPException(status_code=403, detail="only clients can check out")
    try:
        result = checkout(SqlOrderStore(session), actor.id, merchant_id, body.cart)
    except EmptyCart as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    commit_or_fail(session)
    return {
        "group_id": result.group_id,
        "product_count": result.product_count,
        "line_items": [line_item_to_dict(item) for item in result.line_items],
    }


@router.get("/clients/{client_id}/notifications")
def list_notifications(
    client_id: str,
    unread_only: bool = False,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_client(actor, client_id)
    rows = SqlOrderStore(session).list_notifications(client_id, unread_only=unread_only)
    return {"count": len(rows), "notifications": rows}


@router.post("/clients/{client_id}/notifications/{notification_id}/read")
def mark_notification_read(
    client_id: str,
    notification_id: int,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_client(actor, client_id)
    SqlOrderStore(session).mark_notification_read(client_id, notification_id)
    commit_or_fail(session)
    return {"id": notification_id, "read": True}
