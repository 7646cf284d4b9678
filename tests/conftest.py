import os
import uuid
from datetime import datetime, timezone
from unittest.mock import Mock

# Settings are read once at import, so the test environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_database.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("SERVICE_ROLE_KEY", "test-service-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "")
os.environ.setdefault("PTERODACTYL_URL", "panel.test")
os.environ.setdefault("PTERODACTYL_API_KEY", "ptla_test")
os.environ.setdefault("PTERODACTYL_CLIENT_API_KEY", "ptlc_test")
os.environ.setdefault("PTERODACTYL_WEBHOOK_SECRET", "panel-webhook-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from cloudserve.main import app
from cloudserve.database import Base
from cloudserve.dependencies import get_db, get_panel_client, get_panel_factory, get_billing_gateway
from cloudserve.models import (
    AppRole,
    Order,
    OrderStatus,
    Product,
    ProductPlan,
    ProductVariant,
    Profile,
    UserRoleAssignment,
)
from cloudserve.auth.jwt_handler import create_access_token
from cloudserve.services.billing_gateway import BillingGateway
from cloudserve.services.panel_client import PterodactylClient

DATABASE_URL = "sqlite:///./test_database.db"

PERIOD_END = datetime(2025, 10, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """
    One shared database session per test, on a fresh schema.
    """
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def panel():
    """
    Panel client double; every call made through it is recorded.
    """
    return Mock(spec=PterodactylClient)


@pytest.fixture
def panel_factory(panel):
    return Mock(return_value=panel)


@pytest.fixture
def gateway():
    """
    Real gateway without a signing secret, with the network calls replaced.
    """
    billing = BillingGateway(secret_key="sk_test_123", webhook_secret=None)
    billing.get_subscription_period_end = Mock(return_value=PERIOD_END)
    billing.ensure_customer = Mock(side_effect=lambda email, user_id, customer_id=None: customer_id or "cus_new")
    billing.create_checkout_session = Mock(
        return_value={"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
    )
    return billing


@pytest.fixture
def client(db_session, panel, panel_factory, gateway):
    """
    FastAPI test client bound to the test session and the panel and billing doubles.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_panel_client] = lambda: panel
    app.dependency_overrides[get_panel_factory] = lambda: panel_factory
    app.dependency_overrides[get_billing_gateway] = lambda: gateway

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers_for(user_id: str, email: str = None) -> dict:
    token = create_access_token({"sub": user_id, "email": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_customer(db_session: Session) -> Profile:
    profile = Profile(
        user_id=str(uuid.uuid4()),
        email="player.one@example.com",
        full_name="Player One",
        stripe_customer_id="cus_player_one",
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def other_customer(db_session: Session) -> Profile:
    profile = Profile(user_id=str(uuid.uuid4()), email="someone.else@example.com")
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def test_admin(db_session: Session) -> Profile:
    profile = Profile(user_id=str(uuid.uuid4()), email="admin@example.com")
    db_session.add(profile)
    db_session.add(UserRoleAssignment(user_id=profile.user_id, role=AppRole.ADMIN))
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def customer_headers(test_customer):
    return auth_headers_for(test_customer.user_id, test_customer.email)


@pytest.fixture
def admin_headers(test_admin):
    return auth_headers_for(test_admin.user_id, test_admin.email)


@pytest.fixture
def service_headers():
    return {"X-API-Key": "test-service-key"}


@pytest.fixture
def test_product(db_session: Session) -> Product:
    product = Product(
        name="Minecraft",
        slug="minecraft",
        category="game",
        egg_id=1,
        nest_id=1,
        stripe_product_id="prod_minecraft",
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def test_plan(db_session: Session, test_product: Product) -> ProductPlan:
    plan = ProductPlan(
        product_id=test_product.id,
        name="Premium",
        price=9.99,
        ram=4096,
        cpu=200,
        disk=20480,
        stripe_price_id="price_premium",
    )
    db_session.add(plan)
    db_session.commit()
    db_session.refresh(plan)
    return plan


@pytest.fixture
def test_variant(db_session: Session, test_product: Product) -> ProductVariant:
    variant = ProductVariant(
        product_id=test_product.id,
        name="PaperMC",
        egg_id=5,
        docker_image="ghcr.io/pterodactyl/yolks:java_21",
    )
    db_session.add(variant)
    db_session.commit()
    db_session.refresh(variant)
    return variant


def make_order(db_session: Session, user_id: str, **overrides) -> Order:
    fields = dict(
        user_id=user_id,
        product_name="Minecraft",
        product_type="game",
        plan_name="Premium",
        price=9.99,
        status=OrderStatus.PENDING,
    )
    fields.update(overrides)
    order = Order(**fields)
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture
def pending_order(db_session: Session, test_customer: Profile, test_plan: ProductPlan) -> Order:
    return make_order(
        db_session,
        test_customer.user_id,
        stripe_subscription_id="sub_123",
        stripe_checkout_session_id="cs_existing",
    )


@pytest.fixture
def active_order(db_session: Session, test_customer: Profile, test_plan: ProductPlan) -> Order:
    return make_order(
        db_session,
        test_customer.user_id,
        status=OrderStatus.ACTIVE,
        stripe_subscription_id="sub_123",
        pterodactyl_server_id=42,
        pterodactyl_identifier="a1b2c3d4",
    )
