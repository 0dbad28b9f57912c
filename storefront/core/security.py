from __future__ import annotations

from typing import Literal

from fastapi import Header, HTTPException
from pydantic import BaseModel


ActorType = Literal["merchant", "client"]


class Actor(BaseModel):
    type: ActorType
    id: str


def _identity_error(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def get_actor(
    x_actor_type: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> Actor:
    # Identity is established by the gateway in front of the API; only its
    # shape is checked here.
    if not x_actor_type or not x_actor_id or not x_actor_id.strip():
        raise _identity_error("missing actor identity")
    if x_actor_type not in {"merchant", "client"}:
        raise _identity_error("unknown actor type")
    return Actor(type=x_actor_type, id=x_actor_id.strip())


def require_merchant(actor: Actor, merchant_id: str) -> None:
    if actor.type != "merchant" or actor.id != merchant_id:
        raise HTTPException(status_code=403, detail="merchant may only manage its own orders")


def require_client(actor: Actor, client_id: str) -> None:
    if actor.type != "client" or actor.id != client_id:
        raise HTTPException(status_code=403, detail="client may only access its own records")
