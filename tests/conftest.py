"""
Test fixtures and configuration.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from localserve.application.services.access_guard import Caller
from localserve.application.services.earnings_service import EarningsService
from localserve.application.services.reconciliation_service import CounterReconciliationService
from localserve.application.services.subscription_service import SubscriptionService
from localserve.core.app_factory import create_application
from localserve.infrastructure.persistence.sqlite import SQLitePersistence
from localserve.services.email_service import EmailService
from localserve.services.token_service import TokenService

TEST_JWT_SECRET = "localserve-test-secret-0123456789abcdef"
START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for the services' clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEmailService(EmailService):
    """Email service that keeps sent notifications in memory."""

    def __init__(self) -> None:
        super().__init__(smtp_host="", smtp_username="", from_email="")
        self.enabled = False
        self.sent: List[Tuple[str, str, str]] = []

    def send_notification(self, to_email: str, full_name: str, subject: str, message: str) -> bool:
        self.sent.append((to_email, subject, message))
        return True


def seed_profiles(persistence: SQLitePersistence) -> SimpleNamespace:
    provider = persistence.create_provider(
        user_id=20, business_name="Green Thumb Gardening", email="hello@greenthumb.example"
    )
    other_provider = persistence.create_provider(user_id=21, business_name="Sparkle Cleaning")
    customer = persistence.create_customer(user_id=10, full_name="Dana Reyes", email="dana@example.com")
    other_customer = persistence.create_customer(user_id=11, full_name="Sam Lee", email="sam@example.com")
    service = persistence.create_service(provider_id=provider.id, name="Lawn care", base_price=50.0)
    inactive_service = persistence.create_service(
        provider_id=provider.id, name="Snow removal", base_price=80.0, is_active=False
    )
    return SimpleNamespace(
        provider=provider,
        other_provider=other_provider,
        customer=customer,
        other_customer=other_customer,
        service=service,
        inactive_service=inactive_service,
    )


@pytest.fixture
def persistence(tmp_path) -> Iterator[SQLitePersistence]:
    """Provide a fresh SQLite database per test."""
    gateway = SQLitePersistence(tmp_path / "localserve-test.db")
    yield gateway
    gateway.close()


@pytest.fixture
def seeded(persistence: SQLitePersistence) -> SimpleNamespace:
    return seed_profiles(persistence)


@pytest.fixture
def callers(seeded: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(
        customer=Caller(user_id=10, role="customer", customer_id=seeded.customer.id),
        other_customer=Caller(user_id=11, role="customer", customer_id=seeded.other_customer.id),
        provider=Caller(user_id=20, role="provider", provider_id=seeded.provider.id),
        other_provider=Caller(user_id=21, role="provider", provider_id=seeded.other_provider.id),
        admin=Caller(user_id=99, role="admin"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def email_service() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def subscription_service(persistence, email_service, clock) -> SubscriptionService:
    return SubscriptionService(persistence, email_service, clock=clock)


@pytest.fixture
def earnings_service(persistence, clock) -> EarningsService:
    return EarningsService(persistence, platform_fee=0.10, clock=clock)


@pytest.fixture
def reconciliation_service(persistence) -> CounterReconciliationService:
    return CounterReconciliationService(persistence)


@pytest.fixture
def client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    """
    Provide HTTP client for API testing.

    The application runs its real lifespan against a temporary database.
    """
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "localserve-api.db"))
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("SMTP_HOST", "")
    app = create_application()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_seeded(client: TestClient) -> SimpleNamespace:
    return seed_profiles(client.app.state.container.persistence)


@pytest.fixture
def auth_headers():
    tokens = TokenService(jwt_secret=TEST_JWT_SECRET)

    def build(user_id: int, role: str) -> dict:
        return {"Authorization": f"Bearer {tokens.create_token(user_id, role)}"}

    return build
