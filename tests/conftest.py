import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ERP_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256-signing")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp_core.app.db import Base
from erp_core.app.main import app
from erp_core.app import models
from erp_core.app.security import get_db, get_password_hash, create_access_token
from erp_core.app.services import AccountService, StockService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "Passw0rd-123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    AccountService.ensure_system_accounts(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def make_user(db):
    def _make(username="admin", role="Admin", name=None, is_system_admin=False):
        user = models.User(
            name=name or username.title(),
            email=f"{username}@example.com",
            username=username,
            password_hash=PASSWORD_HASH,
            role=role,
            is_system_admin=is_system_admin,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture()
def admin(make_user):
    return make_user("admin", "Admin")


@pytest.fixture()
def inspector(make_user):
    return make_user("inspector", "QC Inspector", name="Quality Checker")


@pytest.fixture()
def make_client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    def _client(user=None):
        headers = {}
        if user is not None:
            headers["Authorization"] = f"Bearer {create_access_token({'sub': user.username})}"
        return TestClient(app, headers=headers)

    yield _client
    app.dependency_overrides.clear()


@pytest.fixture()
def client(make_client, admin):
    """Client authenticated as an Admin."""
    return make_client(admin)


@pytest.fixture()
def anon_client(make_client):
    return make_client()


@pytest.fixture()
def make_stock(db):
    counter = {"n": 0}

    def _make(length=100.0, weight=500.0, width=1200.0, gsm=80.0, type="Kraft", inspected=False):
        counter["n"] += 1
        stock = StockService.create_stock(
            db,
            barcode_id=f"BC-{counter['n']:04d}",
            type=type,
            gsm=gsm,
            width=width,
            length=length,
            weight=weight,
            container_no="CONT-1",
        )
        stock.inspected = inspected
        db.commit()
        db.refresh(stock)
        return stock
    return _make
