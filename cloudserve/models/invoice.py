import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Enum as SQLEnum
from sqlalchemy.orm import relationship

from cloudserve.database import Base


class InvoiceStatus(str, Enum):
    """Invoice states mirrored from the billing processor"""
    OPEN = "open"
    PAID = "paid"
    FAILED = "failed"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True)  # may arrive before the order is known

    stripe_invoice_id = Column(String, unique=True, nullable=False)
    stripe_payment_intent_id = Column(String, nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="eur")
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.OPEN)

    invoice_pdf_url = Column(String, nullable=True)
    hosted_invoice_url = Column(String, nullable=True)
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    order = relationship("Order", backref="invoices")

    def __repr__(self):
        return f"<Invoice(id={self.id}, stripe_invoice_id={self.stripe_invoice_id}, amount={self.amount}, status={self.status})>"
