"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; keep tests off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TIMEZONE", "Asia/Seoul")

from datetime import datetime
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from florist_ledger.core.identity import Operator
from florist_ledger.db.base import Base
from florist_ledger.db.session import enable_sqlite_foreign_keys, get_db
from florist_ledger.main import app
# Import all models to ensure they're registered with Base.metadata
from florist_ledger.models import *
from florist_ledger.services.notification_service import LoggingNotifier

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from florist_ledger.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def operator() -> Operator:
    """Operator as forwarded by the identity provider."""
    return Operator(operator_id="op-1", email="manager@lilymag.test", branch_name="Gangnam")


@pytest.fixture
def operator_headers() -> dict:
    return {"X-Operator-Id": "op-1", "X-Operator-Email": "manager@lilymag.test"}


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def branches(db_session: Session) -> dict:
    """Two branches of the chain."""
    gangnam = Branch(name="Gangnam", code="GN", branch_type="direct", active=True)
    hongdae = Branch(name="Hongdae", code="HD", branch_type="franchise", active=True)
    db_session.add_all([gangnam, hongdae])
    db_session.commit()
    return {"gangnam": gangnam, "hongdae": hongdae}


@pytest.fixture
def make_stock(db_session: Session):
    """Factory creating a stock row with the given quantity."""
    def _make(item_id: str, branch_name: str, quantity: int, name: str = None,
              item_type: str = "product", unit_price: int = None) -> StockRow:
        row = StockRow(
            item_id=item_id,
            branch_name=branch_name,
            item_type=item_type,
            name=name or item_id,
            quantity=quantity,
            unit_price=unit_price,
        )
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return _make


@pytest.fixture
def make_order(db_session: Session):
    """Factory creating an order directly, bypassing placement (for reconciliation)."""
    def _make(branch_name: str, total: int, order_date: datetime, status: str = "processing",
              payment_status: str = "pending", transfer: dict = None) -> Order:
        order = Order(
            order_date=order_date,
            branch_name=branch_name,
            status=status,
            orderer_name="Kim",
            payment_status=payment_status,
            subtotal=total,
            total=total,
        )
        if transfer is not None:
            order.transfer = OrderTransfer(**transfer)
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make
