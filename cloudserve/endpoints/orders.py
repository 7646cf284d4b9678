from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudserve.auth.jwt_handler import verify_jwt_token
from cloudserve.auth.permissions import is_admin
from cloudserve.crud import order as order_crud
from cloudserve.dependencies import get_db
from cloudserve.schemas.order import OrderDetail, OrderList

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/me", response_model=OrderList)
def get_my_orders(
    skip: int = 0,
    limit: int = 100,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
):
    """
    The caller's orders, newest first. Panel identifiers are not included.
    """
    orders = order_crud.get_user_orders(db, current_user["id"], skip=skip, limit=limit)
    return {"items": orders, "total": len(orders)}


@router.get("/{order_id}", response_model=OrderDetail)
def get_my_order(
    order_id: str,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
):
    """
    One order with its server identifier, for the owner or an admin.
    """
    order = order_crud.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.user_id != current_user["id"] and not is_admin(db, current_user["id"]):
        raise HTTPException(status_code=403, detail="Access denied")
    return order
