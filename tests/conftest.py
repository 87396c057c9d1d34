import sys
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from types import ModuleType
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

# Create a test engine BEFORE any akeed imports
_test_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


class TestBase(DeclarativeBase):
    pass


_TestSessionLocal = sessionmaker(bind=_test_engine, autoflush=False, autocommit=False)


class TimestampMixin:
    """Mixin that adds created_at / updated_at columns to any model."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


mock_db_module = ModuleType("akeed.db")
mock_db_module.Base = TestBase
mock_db_module.TimestampMixin = TimestampMixin
mock_db_module.SessionLocal = _TestSessionLocal
mock_db_module.get_engine = lambda: _test_engine

# Also mock akeed.config to prevent .env loading
mock_config_module = ModuleType("akeed.config")


class MockSettings:
    database_url = "sqlite+pysqlite:///:memory:"
    db_pool_size = 5
    db_max_overflow = 10
    db_pool_timeout = 30
    db_pool_recycle = 1800
    wa_access_token = "test-wa-token"
    wa_phone_number_id = "1234567890"
    wa_api_version = "v24.0"
    wa_template_name = "akeed_cod_verification"
    wa_template_language = "ar"
    wa_verify_token = "test-verify-token"
    shopify_api_version = "2024-01"
    default_plan_id = "starter"
    cors_origins = ""


mock_config_module.settings = MockSettings()
mock_config_module.Settings = MockSettings
mock_config_module.validate_settings = lambda s: []

# Insert mocks before any akeed imports
sys.modules["akeed.config"] = mock_config_module
sys.modules["akeed.db"] = mock_db_module

# Now import the models - they'll use our mocked db module
from akeed.models import Integration, Order, Verification, VerificationStatus  # noqa: E402
from akeed.services.whatsapp_gateway import DispatchResult  # noqa: E402

TestBase.metadata.create_all(_test_engine)

Base = TestBase


@pytest.fixture(scope="session")
def engine():
    return _test_engine


@pytest.fixture()
def db_session(engine):
    """Create a database session for testing.

    Uses the same connection as the StaticPool engine to ensure
    all operations see the same data.
    """
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


def _unique_domain() -> str:
    return f"store-{uuid.uuid4().hex[:12]}.myshopify.com"


@pytest.fixture()
def integration_factory(db_session):
    def _create(**overrides) -> Integration:
        values = {
            "org_id": uuid.uuid4(),
            "platform_type": "shopify",
            "platform_store_url": _unique_domain(),
            "access_token": "shpat_test",
            "billing_plan_id": "starter",
            "billing_status": "active",
            "is_active": True,
        }
        values.update(overrides)
        integration = Integration(**values)
        db_session.add(integration)
        db_session.commit()
        db_session.refresh(integration)
        return integration

    return _create


@pytest.fixture()
def integration(integration_factory):
    return integration_factory()


@pytest.fixture()
def normalized_order_factory(integration):
    from akeed.schemas.order import NormalizedOrder

    def _build(**overrides) -> NormalizedOrder:
        values = {
            "org_id": integration.org_id,
            "integration_id": integration.id,
            "external_order_id": str(uuid.uuid4().int)[:13],
            "order_number": "1001",
            "customer_phone": "+966501234567",
            "customer_name": "Sara Ali",
            "customer_email": "sara@example.com",
            "total_price": Decimal("249.00"),
            "currency": "SAR",
            "payment_method": "Cash on Delivery (COD)",
            "raw_payload": {"payment_gateway_names": ["Cash on Delivery (COD)"]},
        }
        values.update(overrides)
        return NormalizedOrder(**values)

    return _build


@pytest.fixture()
def order_record(db_session, integration):
    order = Order(
        org_id=integration.org_id,
        integration_id=integration.id,
        external_order_id=str(uuid.uuid4().int)[:13],
        order_number="1002",
        customer_phone="+966501234567",
        total_price=Decimal("120.50"),
        currency="SAR",
        payment_method="cod",
    )
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture()
def verification_factory(db_session, order_record):
    def _create(status=VerificationStatus.sent, **overrides) -> Verification:
        values = {
            "org_id": order_record.org_id,
            "order_id": order_record.id,
            "status": status,
            "provider_message_id": f"wamid.{uuid.uuid4().hex}",
            "attempts": 1,
        }
        values.update(overrides)
        verification = Verification(**values)
        db_session.add(verification)
        db_session.commit()
        db_session.refresh(verification)
        return verification

    return _create


@pytest.fixture()
def mock_dispatcher():
    dispatcher = MagicMock(name="whatsapp_gateway")
    dispatcher.template_name = "akeed_cod_verification"
    dispatcher.language_code = "ar"
    dispatcher.send_verification_message.return_value = DispatchResult(
        provider_message_id="wamid.HBgM123"
    )
    return dispatcher


@pytest.fixture()
def mock_tagger():
    tagger = MagicMock(name="shopify_gateway")
    tagger.add_order_tag.return_value = "gid://shopify/Order/1"
    return tagger


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from akeed.api.deps import get_db as api_get_db
    from akeed.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[api_get_db] = override_get_db

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()

