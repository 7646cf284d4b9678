import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Enum as SQLEnum

from cloudserve.database import Base


class OrderStatus(str, Enum):
    """Lifecycle states of an order"""
    PENDING = "pending"  # paid, waiting for the panel
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    FAILED = "failed"  # provisioning failed, needs an admin re-trigger
    DELETED = "deleted"  # server no longer exists on the panel
    ARCHIVED = "archived"


class SuspensionReason(str, Enum):
    """Who suspended an order"""
    BILLING = "billing"  # subscription went unpaid
    MANUAL = "manual"  # owner or admin via the suspend endpoint


def generate_display_id() -> str:
    return f"CS-{datetime.now(timezone.utc).strftime('%y%m')}-{uuid.uuid4().hex[:6].upper()}"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_id = Column(String(32), unique=True, nullable=False, default=generate_display_id)
    user_id = Column(String(36), nullable=False, index=True)

    # Commercial attributes
    product_name = Column(String, nullable=False)
    product_type = Column(String, nullable=False, default="game")
    plan_name = Column(String, nullable=False)
    variant_id = Column(String(36), nullable=True)
    variant_name = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)

    # Infrastructure attributes, never listed to customers
    pterodactyl_server_id = Column(Integer, nullable=True, index=True)
    pterodactyl_identifier = Column(String(8), nullable=True, index=True)

    # Billing linkage, empty for orders created outside checkout
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_checkout_session_id = Column(String, unique=True, nullable=True)

    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    # Set while suspended, payment only lifts billing suspensions
    suspension_reason = Column(SQLEnum(SuspensionReason), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order(id={self.id}, display_id={self.display_id}, status={self.status})>"
