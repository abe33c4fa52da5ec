"""
Shared pytest fixtures for the billing test suite.

Every test gets a fresh in-memory SQLite database. Marketplace HTTP calls go
through ``httpx.MockTransport`` so no test touches the network.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["BOOTSTRAP_ADMIN_EMAIL"] = ""

from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing.core.database import Base, get_db
from billing.core.security import create_access_token, hash_password
from billing.main import app
from billing.models.marketplace_config import MarketplaceConfig
from billing.models.user import User
from billing.services.marketplace_client import get_http_client
from factories import DEFAULT_CREDENTIALS

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_config(db):
    def _make(marketplace: str = "meesho", credentials: Optional[dict] = None, is_active: bool = True):
        config = MarketplaceConfig(
            marketplace=marketplace,
            credentials=dict(credentials or DEFAULT_CREDENTIALS[marketplace]),
            is_active=is_active,
            status="active" if is_active else "inactive",
        )
        db.add(config)
        db.commit()
        db.refresh(config)
        return config

    return _make


# ============================================================================
# API client and auth
# ============================================================================


@pytest.fixture
def api(db):
    """TestClient bound to the test database."""

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def set_marketplace_handler(api):
    """Route the sync endpoint's outbound HTTP through a MockTransport handler."""

    def _set(handler):
        async def override_http_client():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                yield client

        app.dependency_overrides[get_http_client] = override_http_client

    return _set


def _create_user(db, email: str, role: str) -> User:
    user = User(email=email, name=role.title(), hashed_password=hash_password("secret123"), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(db) -> dict:
    user = _create_user(db, "admin@example.com", "admin")
    return {"Authorization": f"Bearer {create_access_token(user.email, user.role)}"}


@pytest.fixture
def staff_headers(db) -> dict:
    user = _create_user(db, "staff@example.com", "staff")
    return {"Authorization": f"Bearer {create_access_token(user.email, user.role)}"}
