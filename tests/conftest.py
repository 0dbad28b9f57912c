from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.persistence.pg as pg
from storefront.domain.orders.models import ClientSnapshot, LineItem, Product
from storefront.persistence.memory import InMemoryOrderStore
from storefront.persistence.models import Base


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    pg.enable_sqlite_savepoints(engine)
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(configure_test_engine):
    from storefront.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def actor_headers():
    def _headers(actor_type: str, actor_id: str) -> dict[str, str]:
        return {"X-Actor-Type": actor_type, "X-Actor-Id": actor_id}

    return _headers


BASE_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _line_item(
    item_id: int,
    status: str = "pending",
    client_id: str = "C1",
    product_id: str = "P1",
    quantity: int = 1,
    group_id: str | None = "G1",
    merchant_id: str = "M1",
    created_at: datetime | None = None,
) -> LineItem:
    created = created_at or BASE_TIME + timedelta(seconds=item_id)
    return LineItem(
        id=item_id,
        merchant_id=merchant_id,
        client_id=client_id,
        product_id=product_id,
        quantity=quantity,
        status=status,
        created_at=created,
        updated_at=created,
        group_id=group_id,
    )


@pytest.fixture()
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture()
def make_item():
    return _line_item


@pytest.fixture()
def memory_store() -> InMemoryOrderStore:
    store = InMemoryOrderStore()
    store.add_product("M1", Product(id="P1", name="Riz", price=Decimal("100")))
    store.add_product("M1", Product(id="P2", name="Huile", price=Decimal("50")))
    store.add_client("M1", ClientSnapshot(id="C1", name="Awa", email="awa@example.com"))
    return store
