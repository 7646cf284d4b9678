from typing import Optional

from sqlalchemy.orm import Session

from cloudserve.models import Invoice


def get_invoice_by_stripe_id(db: Session, stripe_invoice_id: str) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.stripe_invoice_id == stripe_invoice_id).first()


def create_invoice(db: Session, **fields) -> Invoice:
    invoice = Invoice(**fields)
    db.add(invoice)
    db.flush()
    return invoice
