"""
Pytest configuration and fixtures.
"""
import random
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from mowave.api.main import create_app
from mowave.config import Settings
from mowave.core.container import Services, build_services
from mowave.integrations.gateway import PaymentGatewaySimulator
from mowave.integrations.notifications import MockSmsSender, SmsDeliveryError, SmsResult, SmsSender

ADMIN_EMAIL = "admin@mowave.com"
ADMIN_PASSWORD = "password"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests without the HTTP layer")
    config.addinivalue_line("markers", "integration: tests through the FastAPI app")
    config.addinivalue_line("markers", "race: concurrency tests")


class FakeClock:
    """Controllable clock for the store."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FailingSmsSender(SmsSender):
    """Sender whose gateway always rejects the message."""

    def __init__(self) -> None:
        self.attempts: List[str] = []

    async def send(self, phone_number: str, message: str, log_id: str) -> SmsResult:
        self.attempts.append(phone_number)
        raise SmsDeliveryError("SMS gateway error: 503 - unavailable")


def make_settings(**overrides: Any) -> Settings:
    """Test settings: zero delays, certain gateway success, no seeding."""
    values: Dict[str, Any] = {
        "app_name": "mowave-test",
        "app_env": "test",
        "log_level": "DEBUG",
        "jwt_secret_key": "test-secret",
        "bcrypt_rounds": 4,
        "seed_default_admin": False,
        "seed_sample_vouchers": False,
        "mtn_success_probability": 1.0,
        "airtel_success_probability": 1.0,
        "mtn_delay_seconds": 0.0,
        "airtel_delay_seconds": 0.0,
        "sms_mock_delay_seconds": 0.0,
        "settlement_workers": 2,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sms_sender() -> MockSmsSender:
    return MockSmsSender(delay_seconds=0)


@pytest.fixture
def failing_sms_sender() -> FailingSmsSender:
    return FailingSmsSender()


@pytest.fixture
def services_factory(sms_sender: MockSmsSender) -> Callable[..., Services]:
    """Build an isolated service graph; keyword arguments override settings."""

    def factory(
        clock: Optional[Callable[[], datetime]] = None,
        gateway: Optional[PaymentGatewaySimulator] = None,
        sender: Optional[SmsSender] = None,
        seed: int = 1234,
        **setting_overrides: Any,
    ) -> Services:
        return build_services(
            make_settings(**setting_overrides),
            rng=random.Random(seed),
            clock=clock,
            gateway=gateway,
            sms_sender=sender or sms_sender,
        )

    return factory


@pytest.fixture
def services(services_factory: Callable[..., Services]) -> Services:
    return services_factory()


@pytest_asyncio.fixture
async def app(services_factory: Callable[..., Services]) -> AsyncGenerator[FastAPI, Any]:
    """App with a seeded admin and a running settlement worker."""
    services = services_factory(seed_default_admin=True)
    application = create_app(services)
    services.worker.start()
    yield application
    await services.worker.stop()
    await services.notifier.drain()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def app_services(app: FastAPI) -> Services:
    return app.state.services


@pytest.fixture
def admin_headers(app_services: Services) -> Dict[str, str]:
    token = app_services.users.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(app_services: Services) -> Dict[str, str]:
    app_services.users.create_user("buyer@example.com", "secret123")
    token = app_services.users.authenticate("buyer@example.com", "secret123")["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_payment_data() -> Dict[str, Any]:
    """Sample payment request body; voucher_id is filled in by the test."""
    return {
        "amount": 10000,
        "phone_number": "256700000000",
        "payment_method": "mtn_momo",
    }
