import os
import uuid
from datetime import datetime, timezone
from typing import Callable, Generator

import pytest

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["PAYOS_CHECKSUM_KEY"] = "test-checksum-key"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_payment_client
from app.core.security import create_access_token
from app.db.base import Base
from app.db.models.account import Account, AccountRole
from app.db.models.store import Store
from app.db.session import get_db
from app.services.payos import PaymentLink


@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(_element, _compiler, **_kw):
    return "TEXT"


NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakePayOSClient:
    """Records payment-link requests instead of calling PayOS."""

    def __init__(self) -> None:
        self.calls = []

    def create_payment_link(self, *, order_code, amount, description, return_url, cancel_url):
        self.calls.append({"order_code": order_code, "amount": amount, "description": description})
        return PaymentLink(
            order_code=order_code,
            amount=amount,
            checkout_url=f"https://pay.payos.vn/web/{order_code}",
            qr_data_url=f"https://img.vietqr.io/image/test.png?amount={amount}",
        )


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def make_owner(db_session) -> Callable[..., Account]:
    def _make(email: str | None = None, **fields) -> Account:
        account = Account(
            id=uuid.uuid4(),
            email=email or f"owner-{uuid.uuid4().hex[:8]}@example.com",
            fullname=fields.pop("fullname", "Test Owner"),
            role=AccountRole.MANAGER.value,
            **fields,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture()
def make_store(db_session) -> Callable[[Account], Store]:
    def _make(owner: Account, name: str = "Main store") -> Store:
        store = Store(id=uuid.uuid4(), owner_id=owner.id, name=name)
        db_session.add(store)
        db_session.commit()
        return store

    return _make


@pytest.fixture()
def make_staff(db_session) -> Callable[..., Account]:
    def _make(store: Store | None) -> Account:
        account = Account(
            id=uuid.uuid4(),
            email=f"staff-{uuid.uuid4().hex[:8]}@example.com",
            fullname="Test Staff",
            role=AccountRole.STAFF.value,
            current_store_id=store.id if store is not None else None,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture()
def payos_client() -> FakePayOSClient:
    return FakePayOSClient()


@pytest.fixture()
def client(session_factory, payos_client) -> Generator[TestClient, None, None]:
    from app.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_client] = lambda: payos_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers() -> Callable[[Account], dict]:
    def _headers(account: Account) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(account.id))}"}

    return _headers
