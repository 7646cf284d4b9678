from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from cloudserve.models import OrderStatus, SuspensionReason


class OrderSummary(BaseModel):
    """Order as listed to its owner; panel identifiers are left out"""
    id: str
    display_id: str
    product_name: str
    product_type: str
    plan_name: str
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    price: Decimal
    status: OrderStatus
    next_billing_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderDetail(OrderSummary):
    """One order for its owner, with the identifier the status endpoint takes"""
    pterodactyl_identifier: Optional[str] = None


class OrderList(BaseModel):
    items: List[OrderSummary]
    total: int


class OrderAdminResponse(OrderSummary):
    user_id: str
    pterodactyl_server_id: Optional[int] = None
    pterodactyl_identifier: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_checkout_session_id: Optional[str] = None
    suspension_reason: Optional[SuspensionReason] = None


class OrderStatusOverride(BaseModel):
    status: OrderStatus = Field(..., description="New status, applied without lifecycle checks")
