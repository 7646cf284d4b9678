import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudserve.config import config
from cloudserve.crud import invoice as invoice_crud
from cloudserve.crud import order as order_crud
from cloudserve.crud import product as product_crud
from cloudserve.crud import profile as profile_crud
from cloudserve.crud import webhook_event as webhook_event_crud
from cloudserve.database import transactional
from cloudserve.errors.billing_errors import WebhookSignatureError
from cloudserve.models import InvoiceStatus, Order, OrderStatus, Product, ProductPlan, ProductVariant, SuspensionReason
from cloudserve.services.billing_gateway import BillingGateway, from_timestamp, subscription_period_end
from cloudserve.services.order_lifecycle import (
    TERMINAL_STATUSES,
    can_transition,
    payment_reactivates,
    transition,
)
from cloudserve.services.provisioning import PanelFactory, ProvisioningService

logger = logging.getLogger(__name__)

# Stripe subscription status -> order status; anything else means active
SUBSCRIPTION_STATUS_MAP = {
    "past_due": OrderStatus.PAYMENT_FAILED,
    "canceled": OrderStatus.CANCELLED,
    "unpaid": OrderStatus.SUSPENDED,
}


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """The subscription an invoice belongs to, in both the old and the basil payload shape."""
    subscription = invoice.get("subscription")
    if not subscription:
        details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
        subscription = details.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    return subscription or None


def _expandable_id(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


class PaymentEventProcessor:
    """
    Applies verified Stripe events to orders and invoices.

    Every event id is recorded before its handler runs, so a redelivered
    event is answered as a duplicate without touching any order. An event
    whose record is older than WEBHOOK_EVENT_RETRY_SECONDS and was never
    marked processed is handled again. State changes are committed before
    side effects (provisioning, panel suspension) are attempted, and
    side-effect failures are only logged.
    """

    def __init__(self, db: Session, gateway: BillingGateway, panel_factory: PanelFactory):
        self.db = db
        self.gateway = gateway
        self.provisioning = ProvisioningService(db, panel_factory)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "checkout.session.completed": self.handle_checkout_completed,
            "invoice.paid": self.handle_invoice_paid,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "customer.subscription.updated": self.handle_subscription_updated,
        }

    def process(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify, deduplicate and dispatch one webhook delivery.

        Raises WebhookSignatureError for unverifiable deliveries. Unexpected
        handler errors propagate after the event record is removed, so the
        processor's redelivery gets another attempt.
        """
        event = self.gateway.parse_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise WebhookSignatureError("Event is missing its id or type")

        logger.info(f"Processing billing event {event_id} ({event_type})")

        try:
            with transactional(self.db):
                record = webhook_event_crud.record_event(self.db, event_id, event_type)
        except IntegrityError:
            record = self._claim_stale(event_id)
            if record is None:
                logger.info(f"Billing event {event_id} was already received, skipping")
                return {"received": True, "duplicate": True}
            logger.warning(f"Billing event {event_id} was received but never processed, handling it again")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled billing event type {event_type}")
        else:
            data_object = (event.get("data") or {}).get("object") or {}
            try:
                handler(data_object)
            except Exception:
                logger.exception(f"Handling billing event {event_id} failed, releasing it for redelivery")
                self.db.rollback()
                with transactional(self.db):
                    webhook_event_crud.forget_event(self.db, event_id)
                raise

        with transactional(self.db):
            webhook_event_crud.mark_processed(self.db, record)
        return {"received": True}

    def _claim_stale(self, event_id: str):
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=config.WEBHOOK_EVENT_RETRY_SECONDS)
        with transactional(self.db):
            return webhook_event_crud.claim_stale_event(self.db, event_id, cutoff)

    # --- checkout.session.completed ---

    def handle_checkout_completed(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("supabase_user_id")
        plan_id = metadata.get("plan_id")
        if not user_id or not plan_id:
            logger.warning(f"Checkout session {session.get('id')} is missing user or plan metadata, no order created")
            return

        if order_crud.get_order_by_checkout_session(self.db, session.get("id")):
            logger.info(f"Checkout session {session.get('id')} already has an order")
            return

        plan = product_crud.get_plan(self.db, plan_id)
        product = product_crud.get_product(self.db, metadata.get("product_id"))
        if product is None and plan is not None:
            product = plan.product
        variant_id = metadata.get("variant_id") or None
        variant = product_crud.get_variant(self.db, variant_id)

        subscription_id = _expandable_id(session.get("subscription"))
        next_billing_date = None
        if subscription_id:
            next_billing_date = self.gateway.get_subscription_period_end(subscription_id)

        try:
            with transactional(self.db):
                order = order_crud.create_order(
                    self.db,
                    user_id=user_id,
                    product_name=metadata.get("product_name") or (product.name if product else ""),
                    product_type=product.category if product else "game",
                    plan_name=metadata.get("plan_name") or (plan.name if plan else ""),
                    price=plan.price if plan else 0,
                    status=OrderStatus.PENDING,
                    stripe_subscription_id=subscription_id,
                    stripe_checkout_session_id=session.get("id"),
                    next_billing_date=next_billing_date,
                    variant_id=variant_id,
                    variant_name=metadata.get("variant_name") or None,
                )
        except IntegrityError:
            logger.info(f"Checkout session {session.get('id')} was recorded concurrently, skipping")
            return

        logger.info(f"Order {order.display_id} created for checkout session {session.get('id')}")

        profile = profile_crud.get_profile(self.db, user_id)
        if plan is None or profile is None or not profile.email:
            logger.warning(f"Order {order.display_id} left pending: plan or customer email unavailable")
            return

        self._provision_new_order(order, plan, product, variant, profile.email)

    def _provision_new_order(
        self,
        order: Order,
        plan: ProductPlan,
        product: Optional[Product],
        variant: Optional[ProductVariant],
        email: str,
    ) -> None:
        try:
            request = self.provisioning.request_for_order(order, plan, product, variant, email)
            result = self.provisioning.provision(request)
            error = result.error
            success = result.success
        except ValidationError as e:
            success, error = False, f"Invalid provisioning parameters: {e.error_count()} error(s)"
            logger.error(f"Order {order.display_id} cannot be provisioned: {e}")
        except Exception as e:
            success, error = False, str(e)
            logger.exception(f"Provisioning order {order.display_id} raised")
            self.db.rollback()

        if not success:
            logger.error(f"Order {order.display_id} marked failed: {error}")
            self.provisioning.mark_failed(order)

    # --- invoice.paid ---

    def handle_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        customer_id = _expandable_id(invoice.get("customer"))
        profile = profile_crud.get_profile_by_customer(self.db, customer_id)
        if profile is None:
            logger.warning(f"Invoice {invoice.get('id')}: no profile for customer {customer_id}, skipping")
            return

        subscription_id = invoice_subscription_id(invoice)
        order = order_crud.get_order_by_subscription(self.db, subscription_id)

        if invoice_crud.get_invoice_by_stripe_id(self.db, invoice.get("id")):
            logger.info(f"Invoice {invoice.get('id')} already recorded")
        else:
            payment_intent = invoice.get("payment_intent")
            with transactional(self.db):
                invoice_crud.create_invoice(
                    self.db,
                    user_id=profile.user_id,
                    order_id=order.id if order else None,
                    stripe_invoice_id=invoice.get("id"),
                    stripe_payment_intent_id=_expandable_id(payment_intent),
                    amount=Decimal(invoice.get("amount_paid") or 0) / Decimal(100),
                    currency=invoice.get("currency") or "eur",
                    status=InvoiceStatus.PAID,
                    invoice_pdf_url=invoice.get("invoice_pdf"),
                    hosted_invoice_url=invoice.get("hosted_invoice_url"),
                    period_start=from_timestamp(invoice.get("period_start")),
                    period_end=from_timestamp(invoice.get("period_end")),
                    paid_at=from_timestamp((invoice.get("status_transitions") or {}).get("paid_at"))
                    or from_timestamp(invoice.get("created")),
                )
            logger.info(f"Invoice {invoice.get('id')} recorded for user {profile.user_id}")

        if order is None or not subscription_id:
            return

        next_billing_date = self.gateway.get_subscription_period_end(subscription_id)
        with transactional(self.db):
            if next_billing_date:
                order.next_billing_date = next_billing_date
            if payment_reactivates(order):
                transition(order, OrderStatus.ACTIVE)

    # --- invoice.payment_failed ---

    def handle_invoice_payment_failed(self, invoice: Dict[str, Any]) -> None:
        subscription_id = invoice_subscription_id(invoice)
        order = order_crud.get_order_by_subscription(self.db, subscription_id)
        if order is None:
            logger.info(f"Invoice {invoice.get('id')} failed for unknown subscription {subscription_id}")
            return
        if not can_transition(order.status, OrderStatus.PAYMENT_FAILED):
            logger.info(f"Order {order.display_id} stays {order.status.value} after failed payment")
            return
        with transactional(self.db):
            transition(order, OrderStatus.PAYMENT_FAILED)

    # --- customer.subscription.deleted ---

    def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        order = order_crud.get_order_by_subscription(self.db, subscription.get("id"))
        if order is None:
            logger.info(f"Subscription {subscription.get('id')} deleted, no matching order")
            return
        self._cancel(order)

    def _cancel(self, order: Order) -> None:
        if not can_transition(order.status, OrderStatus.CANCELLED):
            logger.info(f"Order {order.display_id} is {order.status.value}, cancellation skipped")
            return
        with transactional(self.db):
            changed = transition(order, OrderStatus.CANCELLED)
        if not changed:
            return

        try:
            self.provisioning.suspend_panel_server(order)
        except Exception as e:
            logger.error(f"Suspending the server of cancelled order {order.display_id} failed: {e}")

    # --- customer.subscription.updated ---

    def handle_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        order = order_crud.get_order_by_subscription(self.db, subscription.get("id"))
        if order is None:
            logger.info(f"Subscription {subscription.get('id')} updated, no matching order")
            return

        target = SUBSCRIPTION_STATUS_MAP.get(subscription.get("status"), OrderStatus.ACTIVE)
        next_billing_date = subscription_period_end(subscription)
        if next_billing_date:
            with transactional(self.db):
                order.next_billing_date = next_billing_date

        if order.status in TERMINAL_STATUSES:
            logger.info(f"Order {order.display_id} is {order.status.value}, not moved to {target.value}")
            return
        if target == OrderStatus.CANCELLED:
            self._cancel(order)
            return
        if target == OrderStatus.ACTIVE and not payment_reactivates(order):
            return
        if not can_transition(order.status, target):
            logger.info(f"Order {order.display_id} stays {order.status.value}, {target.value} not reachable")
            return
        with transactional(self.db):
            if transition(order, target) and target == OrderStatus.SUSPENDED:
                order.suspension_reason = SuspensionReason.BILLING
