from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from cloudserve.models import WebhookEvent


def get_event(db: Session, event_id: str) -> Optional[WebhookEvent]:
    return db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()


def record_event(db: Session, event_id: str, event_type: str) -> WebhookEvent:
    """
    Insert the event id; flushing raises IntegrityError if it was already recorded
    """
    event = WebhookEvent(event_id=event_id, event_type=event_type)
    db.add(event)
    db.flush()
    return event


def mark_processed(db: Session, event: WebhookEvent) -> WebhookEvent:
    event.processed_at = datetime.now(timezone.utc)
    db.flush()
    return event


def forget_event(db: Session, event_id: str) -> None:
    """
    Remove a recorded event so a redelivery is processed again
    """
    db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).delete(synchronize_session=False)


def claim_stale_event(db: Session, event_id: str, received_before: datetime) -> Optional[WebhookEvent]:
    """
    Take over an event that was received before the cutoff but never processed.

    The conditional update lets only one redelivery win the claim.
    """
    claimed = (
        db.query(WebhookEvent)
        .filter(
            WebhookEvent.event_id == event_id,
            WebhookEvent.processed_at.is_(None),
            WebhookEvent.received_at < received_before,
        )
        .update({WebhookEvent.received_at: datetime.now(timezone.utc)}, synchronize_session=False)
    )
    if not claimed:
        return None
    db.flush()
    return get_event(db, event_id)
