"""Shared test fixtures for the Kamerun payments gateway tests.

Uses a SQLite file database so tests run without PostgreSQL, and
replaces the auth service and the payment provider with in-process fakes.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from app. The Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in app.core.database would otherwise connect to the real store.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["APP_ENV"] = "test"

from decimal import Decimal
from typing import Callable, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.api.deps import CurrentUser, get_current_user, get_provider_client
from app.core.config import Settings, get_settings
from app.core.database import Base, get_db
from app.main import app
from app.models.profile import Profile
from app.services.provider.smobilpay import CollectRequest, CollectResult

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_USER = CurrentUser(id="user-1", email="amina@example.com", full_name="Amina Ngono")
OTHER_USER = CurrentUser(id="user-2", email="paul@example.com", full_name=None)


class FakeProvider:
    """Stand-in for SmobilPayClient that records calls."""

    def __init__(self) -> None:
        self.collect_requests: list[CollectRequest] = []
        self.status_queries: list[str] = []
        self.provider_status: Optional[str] = "PENDING"
        self.collect_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.on_collect: Optional[Callable[[CollectRequest], None]] = None
        self.on_query: Optional[Callable[[str], None]] = None

    def collect_payment(self, request: CollectRequest) -> CollectResult:
        if self.on_collect is not None:
            self.on_collect(request)
        self.collect_requests.append(request)
        if self.collect_error is not None:
            raise self.collect_error
        return CollectResult(
            payment_url=f"https://pay.example.test/checkout/{request.reference}",
            provider_status="PENDING",
            raw={"status": "PENDING", "orderid": request.reference},
        )

    def query_status(self, reference: str) -> Optional[str]:
        self.status_queries.append(reference)
        if self.on_query is not None:
            self.on_query(reference)
        if self.query_error is not None:
            raise self.query_error
        return self.provider_status


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        app_env="test",
        webhook_secret=None,
        public_base_url="https://payments.example.test",
    )


@pytest.fixture
def session_factory():
    """Sessionmaker bound to the test database, for multi-session tests."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def profile(db_session) -> Profile:
    """Profile row for TEST_USER, as the auth service would have created it."""
    row = Profile(id=TEST_USER.id, email=TEST_USER.email, full_name=TEST_USER.full_name)
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(scope="function")
def client(db_session, fake_provider, test_settings):
    """FastAPI test client with DB, auth, provider and settings overridden."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: TEST_USER
    app.dependency_overrides[get_provider_client] = lambda: fake_provider
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_transaction(db_session):
    """Insert a transaction directly, bypassing the initialize endpoint."""
    from app.services.payments.store import TransactionStore

    def _make(
        reference: str = "KAM-1700000000000-ABCD1234",
        user_id: str = TEST_USER.id,
        status: str = "pending",
        amount: Decimal = Decimal("1000"),
    ):
        store = TransactionStore(db_session)
        txn = store.insert_transaction(
            reference=reference,
            user_id=user_id,
            amount=amount,
            currency="XAF",
            payment_method="mtn",
            phone="690000000",
            metadata={"description": "test"},
        )
        if status != "pending":
            txn.status = status
            db_session.commit()
        return txn

    return _make
