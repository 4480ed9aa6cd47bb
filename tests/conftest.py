import os

# antes de importar app.*: config lê o ambiente no import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYMENT_MOCK_MODE", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.database import get_session
from app.dependencies import (
    get_notification_service,
    get_now,
    get_payment_gateway,
    get_payment_simulator,
)
from app.main import app
from app.services.payment_gateway import MockPaymentGateway
from tests.factories import NOW


class FakeNotifier:
    """Registra as chamadas em vez de enviar."""

    def __init__(self):
        self.calls = []

    def notify(self, appointment_id, type="CONFIRMATION"):
        self.calls.append((appointment_id, type))
        return {"whatsapp": False, "email": False}


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return MockPaymentGateway(base_url="http://testserver")


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def client(session, gateway, notifier, clock):
    def _get_session():
        yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_payment_simulator] = lambda: None
    app.dependency_overrides[get_now] = clock

    yield TestClient(app)

    app.dependency_overrides.clear()

