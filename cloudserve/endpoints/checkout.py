import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from cloudserve.auth.jwt_handler import verify_jwt_token
from cloudserve.config import config
from cloudserve.crud import profile as profile_crud
from cloudserve.dependencies import get_db, get_billing_gateway
from cloudserve.errors.billing_errors import PlanNotSynced
from cloudserve.schemas.checkout import CheckoutRequest, CheckoutResponse
from cloudserve.services.billing_gateway import BillingGateway
from cloudserve.services.checkout import CheckoutService, PlanNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", response_model=CheckoutResponse)
def create_checkout(
    body: CheckoutRequest,
    request: Request,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    """
    Start a subscription checkout for a plan and return the Stripe-hosted URL.
    """
    email = current_user.get("email")
    if not email:
        profile = profile_crud.get_profile(db, current_user["id"])
        email = profile.email if profile else None
    if not email:
        raise HTTPException(status_code=400, detail="An email address is required to check out")

    origin = request.headers.get("origin") or config.CHECKOUT_DEFAULT_ORIGIN
    success_url = body.success_url or f"{origin}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = body.cancel_url or f"{origin}/checkout/cancel"

    service = CheckoutService(db, gateway)
    try:
        session = service.create_session(
            user_id=current_user["id"],
            email=email,
            plan_id=body.plan_id,
            variant_id=body.variant_id,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except PlanNotFound:
        raise HTTPException(status_code=404, detail="Plan not found")
    except PlanNotSynced as e:
        raise HTTPException(status_code=409, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Creating checkout session failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to create checkout session")
    return CheckoutResponse(url=session["url"], session_id=session["id"])
