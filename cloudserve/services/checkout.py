import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from cloudserve.crud import product as product_crud
from cloudserve.crud import profile as profile_crud
from cloudserve.database import transactional
from cloudserve.errors.billing_errors import PlanNotSynced
from cloudserve.models import Profile
from cloudserve.services.billing_gateway import BillingGateway

logger = logging.getLogger(__name__)


class PlanNotFound(LookupError):
    pass


class CheckoutService:
    """
    Starts a Stripe subscription checkout for one plan.

    The session metadata is what the payment-event processor reads back on
    checkout.session.completed to create the order.
    """

    def __init__(self, db: Session, gateway: BillingGateway):
        self.db = db
        self.gateway = gateway

    def _customer_id(self, user_id: str, email: str) -> str:
        profile = profile_crud.get_profile(self.db, user_id)
        stored = profile.stripe_customer_id if profile else None
        customer_id = self.gateway.ensure_customer(email, user_id, stored)
        if customer_id != stored:
            with transactional(self.db):
                if profile is None:
                    profile = Profile(user_id=user_id, email=email)
                    self.db.add(profile)
                profile.stripe_customer_id = customer_id
            logger.info(f"Stored Stripe customer {customer_id} for user {user_id}")
        return customer_id

    def create_session(
        self,
        user_id: str,
        email: str,
        plan_id: str,
        variant_id: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, str]:
        plan = product_crud.get_plan(self.db, plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} not found")
        if not plan.stripe_price_id:
            raise PlanNotSynced("This plan has not been synced to Stripe yet")

        variant = product_crud.get_variant(self.db, variant_id)
        product = plan.product
        customer_id = self._customer_id(user_id, email)

        metadata = {
            "supabase_user_id": user_id,
            "plan_id": plan.id,
            "variant_id": variant.id if variant else "",
            "product_id": product.id if product else "",
            "product_name": product.name if product else "",
            "plan_name": plan.name,
            "variant_name": variant.name if variant else "",
        }
        session = self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=plan.stripe_price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        logger.info(f"Checkout session {session['id']} created for user {user_id}, plan {plan.name}")
        return session
