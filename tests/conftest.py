"""Shared fixtures: in-memory database, users, books and a fake gateway."""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from app import models  # noqa: F401
from app.config import settings
from app.database import get_session
from app.main import app
from app.models.book import Book
from app.models.user import User
from app.services.nomba_client import get_payment_gateway
from app.utils.hash import hash_password
from app.utils.token import issue_user_token


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No real waiting and no webhook secret unless a test sets one."""
    monkeypatch.setattr(settings, "verify_recheck_delay_seconds", 0)
    monkeypatch.setattr(settings, "nomba_webhook_secret", None)
    monkeypatch.setattr(settings, "nomba_webhook_verify", True)
    monkeypatch.setattr(settings, "base_url", "http://api.test")
    monkeypatch.setattr(settings, "frontend_url", "http://shop.test")


@pytest.fixture(name="gateway")
def gateway_fixture():
    gateway = MagicMock()
    gateway.create_checkout_order.return_value = {
        "success": True,
        "data": {"checkoutLink": "https://pay.test/checkout/abc"},
        "full_response": {"code": "00", "data": {"checkoutLink": "https://pay.test/checkout/abc"}},
    }
    gateway.verify_transaction.return_value = {
        "success": True,
        "data": {"code": "00", "data": {"order": {"status": "SUCCESS"}}},
    }
    return gateway


@pytest.fixture(name="client")
def client_fixture(session, gateway):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def _make_user(session, email, role="user"):
    user = User(
        username=email,
        email=email,
        password=hash_password("secret123"),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="user")
def user_fixture(session):
    return _make_user(session, "reader@example.com")


@pytest.fixture(name="other_user")
def other_user_fixture(session):
    return _make_user(session, "someone@example.com")


@pytest.fixture(name="admin")
def admin_fixture(session):
    return _make_user(session, "admin@example.com", role="admin")


def _auth_header(user):
    return {"Authorization": f"Bearer {issue_user_token(user)}"}


@pytest.fixture(name="auth_for")
def auth_for_fixture():
    return _auth_header


@pytest.fixture(name="auth")
def auth_fixture(user):
    return _auth_header(user)


@pytest.fixture(name="admin_auth")
def admin_auth_fixture(admin):
    return _auth_header(admin)


@pytest.fixture(name="make_book")
def make_book_fixture(session):
    counter = {"n": 0}

    def make(price=4000.0, is_free=False, title=None):
        counter["n"] += 1
        n = counter["n"]
        book = Book(
            title=title or f"Book {n}",
            slug=f"book-{n}",
            author="Ada Writer",
            price=0.0 if is_free else price,
            is_free=is_free,
            status="published",
        )
        session.add(book)
        session.commit()
        session.refresh(book)
        return book

    return make
