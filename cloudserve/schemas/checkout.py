from typing import Optional

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    model_config = {"populate_by_name": True}

    plan_id: str = Field(..., alias="planId")
    variant_id: Optional[str] = Field(None, alias="variantId")
    success_url: Optional[str] = Field(None, alias="successUrl")
    cancel_url: Optional[str] = Field(None, alias="cancelUrl")


class CheckoutResponse(BaseModel):
    model_config = {"populate_by_name": True}

    url: str
    session_id: str = Field(..., alias="sessionId")
