from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routes_clients import router as clients_router
from storefront.api.routes_orders import router as orders_router
from storefront.core.config import get_settings
from storefront.core.logging import configure_logging
from storefront.demo import seed_demo_merchant
from storefront.domain.orders.errors import InvalidTransition, NotFound, PartialApplyRisk, PersistenceFailure
from storefront.persistence.pg import init_db, session_scope

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    if settings.bootstrap_demo_on_startup:
        with session_scope() as session:
            result = seed_demo_merchant(session)
        logger.info(
            "demo merchant ready: merchant_id=%s seeded_now=%s",
            result.get("merchant_id"),
            result.get("seeded_now"),
        )


@app.exception_handler(NotFound)
async def not_found_handler(_: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(_: Request, exc: InvalidTransition):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "error": "invalid_transition",
            "current": exc.current,
            "target": exc.target,
        },
    )


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(_: Request, exc: PersistenceFailure):
    logger.warning("store call failed: %s", exc)
    return JSONResponse(
        status_code=503,
        content={
            "detail": str(exc),
            "error": "partial_apply_risk" if isinstance(exc, PartialApplyRisk) else "persistence_failure",
            "retryable": exc.retryable,
        },
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(orders_router)
app.include_router(clients_router)
