from typing import List, Optional

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from cloudserve.models import Order, OrderStatus


def get_order(db: Session, order_id: str) -> Optional[Order]:
    """
    Get order by ID
    """
    return db.query(Order).filter(Order.id == order_id).first()


def get_order_by_identifier(db: Session, identifier: str) -> Optional[Order]:
    """
    Get the order that owns a panel server identifier
    """
    return db.query(Order).filter(Order.pterodactyl_identifier == identifier).first()


def get_order_by_subscription(db: Session, subscription_id: str) -> Optional[Order]:
    """
    Get the most recent order linked to a billing subscription
    """
    if not subscription_id:
        return None
    return (
        db.query(Order)
        .filter(Order.stripe_subscription_id == subscription_id)
        .order_by(desc(Order.created_at))
        .first()
    )


def get_order_by_checkout_session(db: Session, session_id: str) -> Optional[Order]:
    return db.query(Order).filter(Order.stripe_checkout_session_id == session_id).first()


def get_order_by_panel_server(db: Session, server_id: Optional[int], identifier: Optional[str]) -> Optional[Order]:
    """
    Get the order pointing at a panel server, by numeric id or public identifier
    """
    conditions = []
    if server_id is not None:
        conditions.append(Order.pterodactyl_server_id == server_id)
    if identifier:
        conditions.append(Order.pterodactyl_identifier == identifier)
    if not conditions:
        return None
    return db.query(Order).filter(or_(*conditions)).first()


def get_user_orders(db: Session, user_id: str, *, skip: int = 0, limit: int = 100) -> List[Order]:
    """
    Get a list of orders for a user, newest first
    """
    return (
        db.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(desc(Order.created_at))
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_orders_with_panel_server(db: Session) -> List[Order]:
    return db.query(Order).filter(Order.pterodactyl_server_id.isnot(None)).all()


def get_active_orders_with_identifier(db: Session) -> List[Order]:
    return (
        db.query(Order)
        .filter(Order.status == OrderStatus.ACTIVE, Order.pterodactyl_identifier.isnot(None))
        .all()
    )


def create_order(db: Session, **fields) -> Order:
    """
    Add a new order to the session and flush it so the generated ids are available
    """
    order = Order(**fields)
    db.add(order)
    db.flush()
    return order
