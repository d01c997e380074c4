import os
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from backoffice.app.api.deps import get_db
from backoffice.app.db.base import Base
from backoffice.app.db.models.models_v1 import Inventory
from backoffice.app.db.seed import seed_master_data
from backoffice.app.main import app
from backoffice.services import procurement
from backoffice.services.procurement import OrderLine

ACTOR = "user-1"


@dataclass
class MasterData:
    supplier_id: int
    product_a: int
    product_b: int


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Fresh schema per test.

    TEST_DATABASE_URL points at a throwaway Postgres database (required for
    the row-lock tests); otherwise a SQLite file in tmp_path is used.
    """
    url = os.environ.get("TEST_DATABASE_URL")
    if url:
        eng = create_engine(url, pool_size=10, max_overflow=10)
        Base.metadata.drop_all(bind=eng)
    else:
        eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def master(db_session) -> MasterData:
    """Supplier S, products A and B, both with an empty inventory row."""
    supplier, products = seed_master_data(db_session)
    return MasterData(supplier_id=supplier.id, product_a=products["A"].id, product_b=products["B"].id)


@pytest.fixture(scope="function")
def client(session_factory, master):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app, headers={"X-Actor-Id": ACTOR}) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


# ---------- Helpers ----------
@pytest.fixture(scope="function")
def stock(db_session):
    """Current inventory row of a product, re-read from the database."""

    def _stock(product_id: int) -> Inventory:
        db_session.expire_all()
        return db_session.execute(select(Inventory).where(Inventory.product_id == product_id)).scalar_one()

    return _stock


@pytest.fixture(scope="function")
def make_po(db_session, master):
    """Create a draft order (default: 10 x A at 5.00, 5 x B at 20.00) and return its id."""

    def _make(lines=None, *, order_date=None):
        lines = lines or [
            OrderLine(product_id=master.product_a, quantity=10, unit_cost=Decimal("5")),
            OrderLine(product_id=master.product_b, quantity=5, unit_cost=Decimal("20")),
        ]
        po = procurement.create_purchase_order(
            db_session,
            actor_id=ACTOR,
            supplier_id=master.supplier_id,
            order_date=order_date or date.today(),
            items=lines,
        )
        return po.id

    return _make


@pytest.fixture(scope="function")
def sent_po(db_session, make_po):
    """A default order walked through submit, approve and send."""

    def _sent(lines=None):
        po_id = make_po(lines)
        procurement.submit_purchase_order(db_session, po_id, actor_id=ACTOR)
        procurement.approve_purchase_order(db_session, po_id, actor_id="manager-1")
        procurement.send_purchase_order(db_session, po_id, actor_id=ACTOR)
        return po_id

    return _sent
