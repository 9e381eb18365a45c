"""Pytest fixtures: test client, test DB (in-memory SQLite), fake Redis, stub clients."""
import os
from unittest.mock import MagicMock

import pytest

# Must be set before app modules are imported (settings are read at import time)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-token")
os.environ.setdefault("TELEGRAM_ADMIN_CHAT_ID", "-1001234567890")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-0123456789")
os.environ.setdefault("MPESA_CONSUMER_KEY", "test-key")
os.environ.setdefault("MPESA_CONSUMER_SECRET", "test-secret")
os.environ.setdefault("MPESA_PASSKEY", "test-passkey")
os.environ.setdefault("PUBLIC_BASE_URL", "https://api.example.com")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis
from fastapi.testclient import TestClient

from app.api.deps import get_daraja_client, get_telegram_client
from app.db.base import Base
from app.db.init_db import import_models
from app.db.session import SessionLocal, engine
from app.main import app
from app.models.category import Category
from app.models.daily_task import DailyTask
from app.models.job_account import JobAccount
from app.models.user_role import UserRole
from app.services.auth.security import create_access_token, hash_password
from app.services.rate_limit import get_redis
from app.services.users.service import UserService

PASSWORD = "Secret123"


@pytest.fixture(autouse=True)
def tables():
    import_models()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def daraja():
    client = MagicMock()
    client.stk_push.return_value = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": "ws_CO_191220191020363925",
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    }
    return client


@pytest.fixture
def telegram():
    client = MagicMock()
    client.send_message.return_value = {"message_id": 4242}
    return client


@pytest.fixture
def client(fake_redis, daraja, telegram):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_daraja_client] = lambda: daraja
    app.dependency_overrides[get_telegram_client] = lambda: telegram
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_job(db):
    def _make(price=3500, total_stock=None, sold_count=0, is_available=True, title="Remote Data Entry Clerk"):
        category = Category(name="Data Entry", min_price=2000, max_price=15000)
        db.add(category)
        db.flush()
        job = JobAccount(
            category_id=category.id,
            title=title,
            description="Enter and verify records for clients.",
            price=price,
            total_stock=total_stock,
            sold_count=sold_count,
            is_available=is_available,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job
    return _make


@pytest.fixture
def make_tasks(db):
    def _make(job, days=30):
        tasks = [
            DailyTask(job_account_id=job.id, day_number=d, title=f"Day {d}", points=10)
            for d in range(1, days + 1)
        ]
        db.add_all(tasks)
        db.commit()
        return tasks
    return _make


@pytest.fixture
def make_user(db):
    """Returns (user, auth headers)."""
    def _make(email="jane@example.com", role=None, full_name="Jane Wanjiku"):
        user = UserService(db).register(email, hash_password(PASSWORD), full_name)
        if role:
            db.add(UserRole(user_id=user.id, role=role))
            db.commit()
        return user, {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _make


@pytest.fixture
def admin_headers(make_user):
    _, headers = make_user(email="admin@example.com", role="admin", full_name="Admin User")
    return headers
