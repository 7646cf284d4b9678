import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from cloudserve.config import Config
from cloudserve.errors.billing_errors import BillingConfigurationError, WebhookSignatureError

logger = logging.getLogger(__name__)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_period_end(subscription: Dict[str, Any]) -> Optional[datetime]:
    """
    End of the current billing period of a subscription object.

    Newer API versions moved current_period_end from the subscription onto its
    items, so the first item is used when the top-level field is absent.
    """
    value = subscription.get("current_period_end")
    if not value:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            value = items[0].get("current_period_end")
    return from_timestamp(value)


class BillingGateway:
    """
    The few Stripe calls the storefront makes, behind one object so that
    handlers can be tested without the network.
    """

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None, api_version: Optional[str] = None):
        if not secret_key:
            raise BillingConfigurationError("STRIPE_SECRET_KEY is not set")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version

    @classmethod
    def from_config(cls, cfg: Config) -> "BillingGateway":
        return cls(
            secret_key=cfg.STRIPE_SECRET_KEY,
            webhook_secret=cfg.STRIPE_WEBHOOK_SECRET,
            api_version=cfg.STRIPE_API_VERSION,
        )

    def _options(self) -> Dict[str, Any]:
        options = {"api_key": self.secret_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and decode a webhook delivery into a plain event dict.

        Without a signing secret the payload is trusted as-is, which is only
        acceptable for local testing.
        """
        if not self.webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET is not set, accepting billing event without signature verification")
            try:
                return json.loads(payload)
            except ValueError as e:
                raise WebhookSignatureError(f"Malformed event payload: {e}") from e

        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError(f"Malformed event payload: {e}") from e
        return json.loads(payload)

    def get_subscription_period_end(self, subscription_id: str) -> Optional[datetime]:
        subscription = stripe.Subscription.retrieve(subscription_id, **self._options())
        return subscription_period_end(subscription.to_dict())

    def ensure_customer(self, email: str, user_id: str, customer_id: Optional[str] = None) -> str:
        """Returns the stored customer id, an existing customer with this email, or a new one."""
        if customer_id:
            return customer_id
        existing = stripe.Customer.list(email=email, limit=1, **self._options())
        if existing.data:
            return existing.data[0].id
        customer = stripe.Customer.create(
            email=email,
            metadata={"supabase_user_id": user_id},
            **self._options(),
        )
        logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, str]:
        session = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
            **self._options(),
        )
        return {"id": session.id, "url": session.url}
