import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime

from cloudserve.database import Base


class WebhookEvent(Base):
    """
    One row per billing event id that got past signature verification.

    The unique event_id makes redelivered events detectable before any
    order or invoice is written.
    """
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(255), unique=True, nullable=False)
    event_type = Column(String(255), nullable=False)
    received_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookEvent({self.event_id}, {self.event_type})>"
