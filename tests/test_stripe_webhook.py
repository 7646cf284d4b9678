import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from cloudserve.dependencies import get_billing_gateway
from cloudserve.main import app
from cloudserve.models import Invoice, Order, OrderStatus, SuspensionReason, WebhookEvent
from cloudserve.services.billing_gateway import BillingGateway
from tests.conftest import make_order


def event(event_id, event_type, data_object):
    return {"id": event_id, "type": event_type, "data": {"object": data_object}}


def post_event(client, payload, headers=None):
    return client.post("/webhooks/stripe", content=json.dumps(payload), headers=headers or {})


@pytest.fixture
def checkout_session(test_customer, test_product, test_plan):
    return {
        "id": "cs_test_new",
        "subscription": "sub_new",
        "customer": test_customer.stripe_customer_id,
        "metadata": {
            "supabase_user_id": test_customer.user_id,
            "plan_id": test_plan.id,
            "product_id": test_product.id,
            "product_name": test_product.name,
            "plan_name": test_plan.name,
            "variant_id": "",
            "variant_name": "",
        },
    }


@pytest.fixture
def healthy_panel(panel):
    panel.find_user_by_email.return_value = 7
    panel.get_first_node.return_value = 1
    panel.get_free_allocation.return_value = 11
    panel.create_server.return_value = {"id": 42, "identifier": "a1b2c3d4"}
    return panel


class TestCheckoutCompleted:
    def test_creates_and_provisions_order(self, client, db_session, checkout_session, healthy_panel, gateway):
        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.status_code == 200
        assert response.json() == {"received": True}

        order = db_session.query(Order).filter(Order.stripe_checkout_session_id == "cs_test_new").one()
        assert order.status == OrderStatus.ACTIVE
        assert order.product_name == "Minecraft"
        assert order.plan_name == "Premium"
        assert order.stripe_subscription_id == "sub_new"
        assert order.pterodactyl_server_id == 42
        assert order.pterodactyl_identifier == "a1b2c3d4"
        assert order.next_billing_date is not None
        gateway.get_subscription_period_end.assert_called_once_with("sub_new")

        payload = healthy_panel.create_server.call_args.args[0]
        assert payload["limits"]["memory"] == 4096
        assert payload["limits"]["disk"] == 20480

    def test_variant_egg_is_used(self, client, db_session, checkout_session, test_variant, healthy_panel):
        checkout_session["metadata"]["variant_id"] = test_variant.id
        checkout_session["metadata"]["variant_name"] = test_variant.name

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.status_code == 200
        payload = healthy_panel.create_server.call_args.args[0]
        assert payload["egg"] == 5
        assert payload["docker_image"] == "ghcr.io/pterodactyl/yolks:java_21"
        order = db_session.query(Order).one()
        assert order.variant_name == "PaperMC"

    def test_missing_plan_metadata_creates_nothing(self, client, db_session, checkout_session, panel_factory):
        del checkout_session["metadata"]["plan_id"]

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.status_code == 200
        assert db_session.query(Order).count() == 0
        panel_factory.assert_not_called()

    def test_provisioning_failure_marks_order_failed(self, client, db_session, checkout_session, healthy_panel):
        healthy_panel.get_first_node.side_effect = RuntimeError("panel exploded")

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.status_code == 200
        order = db_session.query(Order).one()
        assert order.status == OrderStatus.FAILED
        assert order.pterodactyl_server_id is None

    def test_duplicate_event_is_ignored(self, client, db_session, checkout_session, healthy_panel):
        payload = event("evt_1", "checkout.session.completed", checkout_session)

        first = post_event(client, payload)
        second = post_event(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}
        assert db_session.query(Order).count() == 1
        assert healthy_panel.create_server.call_count == 1

    def test_same_session_under_new_event_id(self, client, db_session, checkout_session, healthy_panel):
        post_event(client, event("evt_1", "checkout.session.completed", checkout_session))
        response = post_event(client, event("evt_2", "checkout.session.completed", checkout_session))

        assert response.status_code == 200
        assert db_session.query(Order).count() == 1
        assert healthy_panel.create_server.call_count == 1


class TestInvoicePaid:
    def invoice(self, customer_id, subscription_id="sub_123", invoice_id="in_1"):
        return {
            "id": invoice_id,
            "customer": customer_id,
            "parent": {"subscription_details": {"subscription": subscription_id}},
            "amount_paid": 999,
            "currency": "eur",
            "payment_intent": "pi_1",
            "hosted_invoice_url": "https://invoice.stripe.test/in_1",
            "status_transitions": {"paid_at": 1756684800},
            "period_start": 1756684800,
            "period_end": 1759276800,
        }

    def test_records_invoice_and_recovers_order(self, client, db_session, test_customer, active_order):
        active_order.status = OrderStatus.PAYMENT_FAILED
        db_session.commit()

        response = post_event(client, event("evt_1", "invoice.paid", self.invoice(test_customer.stripe_customer_id)))

        assert response.status_code == 200
        invoice = db_session.query(Invoice).one()
        assert float(invoice.amount) == pytest.approx(9.99)
        assert invoice.currency == "eur"
        assert invoice.order_id == active_order.id
        assert invoice.user_id == test_customer.user_id
        assert invoice.stripe_payment_intent_id == "pi_1"

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.ACTIVE
        assert active_order.next_billing_date is not None

    def test_lifts_billing_suspension(self, client, db_session, test_customer, active_order):
        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "unpaid"}))
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.SUSPENDED

        post_event(client, event("evt_2", "invoice.paid", self.invoice(test_customer.stripe_customer_id)))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.ACTIVE
        assert active_order.suspension_reason is None

    def test_keeps_manual_suspension(self, client, db_session, test_customer, active_order):
        active_order.status = OrderStatus.SUSPENDED
        active_order.suspension_reason = SuspensionReason.MANUAL
        db_session.commit()

        post_event(client, event("evt_1", "invoice.paid", self.invoice(test_customer.stripe_customer_id)))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.SUSPENDED
        assert active_order.suspension_reason == SuspensionReason.MANUAL
        assert db_session.query(Invoice).count() == 1

    def test_unknown_customer_is_skipped(self, client, db_session, active_order):
        response = post_event(client, event("evt_1", "invoice.paid", self.invoice("cus_unknown")))

        assert response.status_code == 200
        assert db_session.query(Invoice).count() == 0

    def test_invoice_recorded_once(self, client, db_session, test_customer, active_order):
        data = self.invoice(test_customer.stripe_customer_id)
        post_event(client, event("evt_1", "invoice.paid", data))
        post_event(client, event("evt_2", "invoice.paid", data))

        assert db_session.query(Invoice).count() == 1


class TestPaymentFailed:
    def test_marks_payment_failed(self, client, db_session, active_order):
        response = post_event(client, event("evt_1", "invoice.payment_failed", {"id": "in_2", "subscription": "sub_123"}))

        assert response.status_code == 200
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.PAYMENT_FAILED

    def test_cancelled_order_is_left_alone(self, client, db_session, active_order):
        active_order.status = OrderStatus.CANCELLED
        db_session.commit()

        post_event(client, event("evt_1", "invoice.payment_failed", {"id": "in_2", "subscription": "sub_123"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.CANCELLED


class TestSubscriptionEvents:
    def test_deleted_cancels_and_suspends_once(self, client, db_session, active_order, panel):
        first = post_event(client, event("evt_1", "customer.subscription.deleted", {"id": "sub_123"}))
        second = post_event(client, event("evt_2", "customer.subscription.deleted", {"id": "sub_123"}))

        assert first.status_code == 200
        assert second.status_code == 200
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.CANCELLED
        assert active_order.cancelled_at is not None
        panel.suspend_server.assert_called_once_with(42)

    def test_deleted_without_server_skips_panel(self, client, db_session, test_customer, test_plan, panel_factory):
        order = make_order(db_session, test_customer.user_id, status=OrderStatus.ACTIVE, stripe_subscription_id="sub_9")

        post_event(client, event("evt_1", "customer.subscription.deleted", {"id": "sub_9"}))

        db_session.refresh(order)
        assert order.status == OrderStatus.CANCELLED
        panel_factory.assert_not_called()

    def test_panel_failure_keeps_cancellation(self, client, db_session, active_order, panel):
        panel.suspend_server.side_effect = RuntimeError("panel down")

        response = post_event(client, event("evt_1", "customer.subscription.deleted", {"id": "sub_123"}))

        assert response.status_code == 200
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.CANCELLED

    def test_updated_does_not_resurrect_cancelled(self, client, db_session, active_order):
        active_order.status = OrderStatus.CANCELLED
        db_session.commit()

        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "active"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.CANCELLED

    def test_updated_past_due(self, client, db_session, active_order):
        post_event(client, event("evt_1", "customer.subscription.updated", {
            "id": "sub_123",
            "status": "past_due",
            "items": {"data": [{"current_period_end": 1759276800}]},
        }))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.PAYMENT_FAILED
        assert active_order.next_billing_date is not None

    def test_updated_active_recovers_payment_failed(self, client, db_session, active_order):
        active_order.status = OrderStatus.PAYMENT_FAILED
        db_session.commit()

        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "active"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.ACTIVE

    def test_updated_canceled_cancels(self, client, db_session, active_order, panel):
        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "canceled"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.CANCELLED
        panel.suspend_server.assert_called_once_with(42)

    def test_updated_unpaid_suspends_status_only(self, client, db_session, active_order, panel):
        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "unpaid"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.SUSPENDED
        panel.suspend_server.assert_not_called()
        assert active_order.suspension_reason == SuspensionReason.BILLING

    def test_updated_active_keeps_manual_suspension(self, client, db_session, active_order):
        active_order.status = OrderStatus.SUSPENDED
        active_order.suspension_reason = SuspensionReason.MANUAL
        db_session.commit()

        post_event(client, event("evt_1", "customer.subscription.updated", {"id": "sub_123", "status": "active"}))

        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.SUSPENDED


class TestDelivery:
    def test_unhandled_type(self, client, db_session):
        response = post_event(client, event("evt_1", "customer.created", {"id": "cus_1"}))

        assert response.status_code == 200
        recorded = db_session.query(WebhookEvent).one()
        assert recorded.event_type == "customer.created"
        assert recorded.processed_at is not None

    def test_malformed_payload(self, client):
        response = client.post("/webhooks/stripe", content=b"not json")
        assert response.status_code == 400

    def test_handler_failure_releases_event(self, client, db_session, checkout_session, gateway):
        gateway.get_subscription_period_end.side_effect = RuntimeError("stripe timeout")

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook processing failed"
        assert db_session.query(WebhookEvent).count() == 0
        assert db_session.query(Order).count() == 0

    def test_stale_unprocessed_event_is_handled_again(self, client, db_session, checkout_session, healthy_panel):
        db_session.add(WebhookEvent(
            event_id="evt_1",
            event_type="checkout.session.completed",
            received_at=datetime.now(timezone.utc) - timedelta(hours=1),
        ))
        db_session.commit()

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.json() == {"received": True}
        assert db_session.query(Order).count() == 1
        recorded = db_session.query(WebhookEvent).one()
        assert recorded.processed_at is not None

    def test_recent_unprocessed_event_is_a_duplicate(self, client, db_session, checkout_session, healthy_panel):
        db_session.add(WebhookEvent(event_id="evt_1", event_type="checkout.session.completed"))
        db_session.commit()

        response = post_event(client, event("evt_1", "checkout.session.completed", checkout_session))

        assert response.json() == {"received": True, "duplicate": True}
        assert db_session.query(Order).count() == 0
        healthy_panel.create_server.assert_not_called()


class TestSignature:
    SECRET = "whsec_test_secret"

    @pytest.fixture
    def signed_client(self, client):
        signing_gateway = BillingGateway(secret_key="sk_test_123", webhook_secret=self.SECRET)
        app.dependency_overrides[get_billing_gateway] = lambda: signing_gateway
        return client

    def sign(self, payload: str, timestamp: int = None) -> str:
        timestamp = timestamp or int(time.time())
        signature = hmac.new(self.SECRET.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    def test_valid_signature(self, signed_client, db_session):
        payload = json.dumps(event("evt_signed", "customer.created", {"id": "cus_1"}))

        response = signed_client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": self.sign(payload)},
        )

        assert response.status_code == 200
        assert db_session.query(WebhookEvent).count() == 1

    def test_bad_signature(self, signed_client, db_session):
        payload = json.dumps(event("evt_signed", "customer.created", {"id": "cus_1"}))

        response = signed_client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Webhook signature verification failed"
        assert db_session.query(WebhookEvent).count() == 0

    def test_missing_signature(self, signed_client):
        payload = json.dumps(event("evt_signed", "customer.created", {"id": "cus_1"}))

        response = signed_client.post("/webhooks/stripe", content=payload)

        assert response.status_code == 400
