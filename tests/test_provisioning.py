import json
from unittest.mock import Mock

import pytest

from cloudserve.errors.panel_errors import NoFreeAllocations, PanelServerNotFound
from cloudserve.models import Order, OrderStatus, SuspensionReason
from cloudserve.services.panel_client import PterodactylClient
from tests.conftest import auth_headers_for, make_order


def provision_body(order: Order, email: str, **overrides):
    body = {
        "orderId": order.id,
        "gameId": "minecraft",
        "planName": "Premium",
        "ram": 4096,
        "cpu": 200,
        "disk": 20480,
        "userId": order.user_id,
        "userEmail": email,
    }
    body.update(overrides)
    return body


@pytest.fixture
def healthy_panel(panel):
    panel.find_user_by_email.return_value = 7
    panel.get_first_node.return_value = 1
    panel.get_free_allocation.return_value = 11
    panel.create_server.return_value = {"id": 42, "identifier": "a1b2c3d4"}
    return panel


class TestInternalProvision:
    def test_requires_service_key(self, client, pending_order, test_customer, panel_factory):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email),
        )
        assert response.status_code == 403
        panel_factory.assert_not_called()

    def test_wrong_service_key(self, client, pending_order, test_customer):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers={"X-API-Key": "wrong"},
        )
        assert response.status_code == 403

    def test_provision_premium_minecraft(self, client, db_session, pending_order, test_customer, healthy_panel, service_headers):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers=service_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "serverId": 42, "serverIdentifier": "a1b2c3d4"}

        payload = healthy_panel.create_server.call_args.args[0]
        assert payload["limits"]["memory"] == 4096
        assert payload["limits"]["disk"] == 20480
        assert payload["limits"]["cpu"] == 200
        assert payload["egg"] == 1
        assert payload["docker_image"] == "ghcr.io/pterodactyl/yolks:java_17"
        assert payload["feature_limits"] == {"databases": 1, "backups": 3, "allocations": 1}
        assert payload["allocation"] == {"default": 11}
        healthy_panel.create_user.assert_not_called()

        db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.ACTIVE
        assert pending_order.pterodactyl_server_id == 42
        assert pending_order.pterodactyl_identifier == "a1b2c3d4"

    def test_creates_panel_user_when_missing(self, client, pending_order, test_customer, healthy_panel, service_headers):
        healthy_panel.find_user_by_email.return_value = None
        healthy_panel.create_user.return_value = 8

        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers=service_headers,
        )

        assert response.status_code == 200
        kwargs = healthy_panel.create_user.call_args.kwargs
        assert kwargs["email"] == test_customer.email
        assert kwargs["username"].startswith("playerone_")
        assert kwargs["first_name"] == "player.one"
        assert healthy_panel.create_server.call_args.args[0]["user"] == 8

    def test_no_free_allocations_leaves_order_pending(self, client, db_session, pending_order, test_customer, healthy_panel, service_headers):
        healthy_panel.get_free_allocation.side_effect = NoFreeAllocations()

        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers=service_headers,
        )

        assert response.status_code == 502
        assert response.json()["success"] is False
        assert "no free allocations" in response.json()["error"]
        healthy_panel.create_server.assert_not_called()

        db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.PENDING
        assert pending_order.pterodactyl_server_id is None

    def test_order_with_server_is_a_conflict(self, client, active_order, test_customer, panel_factory, service_headers):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(active_order, test_customer.email),
            headers=service_headers,
        )

        assert response.status_code == 409
        panel_factory.assert_not_called()

    def test_unknown_order(self, client, pending_order, test_customer, service_headers):
        body = provision_body(pending_order, test_customer.email, orderId="00000000-0000-4000-8000-000000000000")
        response = client.post("/internal/servers/provision", json=body, headers=service_headers)
        assert response.status_code == 404

    def test_user_id_must_own_order(self, client, db_session, pending_order, test_customer, other_customer, panel_factory, service_headers):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, other_customer.email, userId=other_customer.user_id),
            headers=service_headers,
        )

        assert response.status_code == 403
        panel_factory.assert_not_called()
        db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.PENDING
        assert pending_order.pterodactyl_server_id is None

    def test_ram_out_of_range(self, client, pending_order, test_customer, panel_factory, service_headers):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email, ram=256),
            headers=service_headers,
        )

        assert response.status_code == 422
        panel_factory.assert_not_called()

    def test_invalid_version_string(self, client, pending_order, test_customer, service_headers):
        response = client.post(
            "/internal/servers/provision",
            json=provision_body(pending_order, test_customer.email, minecraftVersion="1.20; rm -rf"),
            headers=service_headers,
        )
        assert response.status_code == 422


class TestProvisionThroughPanelHttp:
    """Quotas pass through a real panel client and come back as bytes."""

    def test_quota_round_trip(self, client, db_session, test_customer, test_plan, panel_factory, service_headers):
        order = make_order(db_session, test_customer.user_id, plan_name="Starter")
        session = Mock()
        sent = {}

        def request(method, url, **kwargs):
            response = Mock(ok=True, status_code=200, content=b"{}")
            if url.endswith("/api/application/users"):
                body = {"data": [{"attributes": {"id": 7}}]}
            elif url.endswith("/api/application/nodes"):
                body = {"data": [{"attributes": {"id": 1}}]}
            elif url.endswith("/allocations"):
                body = {"data": [{"attributes": {"id": 11, "assigned": False}}]}
            elif url.endswith("/api/application/servers"):
                sent.update(kwargs["json"])
                body = {"attributes": {"id": 43, "identifier": "b2c3d4e5"}}
            elif url.endswith("/resources"):
                body = {"attributes": {"current_state": "running", "resources": {"memory_bytes": 1}}}
            else:
                body = {"attributes": {"name": sent.get("name"), "limits": sent.get("limits")}}
            response.json.return_value = json.loads(json.dumps(body))
            return response

        session.request.side_effect = request
        panel_factory.return_value = PterodactylClient(
            base_url="panel.test",
            application_key="ptla_test",
            client_key="ptlc_test",
            session=session,
        )

        response = client.post(
            "/internal/servers/provision",
            json=provision_body(order, test_customer.email, planName="Starter", ram=2048, cpu=100, disk=10240),
            headers=service_headers,
        )
        assert response.status_code == 200
        assert sent["limits"]["memory"] == 2048
        assert sent["limits"]["disk"] == 10240

        status = client.post(
            "/servers/status",
            json={"identifier": "b2c3d4e5"},
            headers=auth_headers_for(test_customer.user_id),
        )
        assert status.status_code == 200
        resources = status.json()["resources"]
        assert resources["memory_limit_bytes"] == 2048 * 1024 * 1024
        assert resources["disk_limit_bytes"] == 10240 * 1024 * 1024


class TestCustomerProvision:
    def test_owner_can_provision(self, client, pending_order, test_customer, customer_headers, healthy_panel):
        response = client.post(
            "/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers=customer_headers,
        )
        assert response.status_code == 200
        assert response.json()["serverIdentifier"] == "a1b2c3d4"

    def test_other_user_is_denied(self, client, pending_order, test_customer, other_customer, panel_factory):
        response = client.post(
            "/servers/provision",
            json=provision_body(pending_order, test_customer.email),
            headers=auth_headers_for(other_customer.user_id),
        )
        assert response.status_code == 403
        panel_factory.assert_not_called()

    def test_user_id_must_match_order(self, client, pending_order, test_customer, other_customer, customer_headers):
        response = client.post(
            "/servers/provision",
            json=provision_body(pending_order, test_customer.email, userId=other_customer.user_id),
            headers=customer_headers,
        )
        assert response.status_code == 403

    def test_requires_token(self, client, pending_order, test_customer):
        response = client.post("/servers/provision", json=provision_body(pending_order, test_customer.email))
        assert response.status_code == 401


class TestSuspend:
    def test_suspend_without_server_skips_panel(self, client, db_session, test_customer, test_plan, panel_factory, service_headers):
        order = make_order(db_session, test_customer.user_id, status=OrderStatus.ACTIVE)

        response = client.post(
            "/internal/servers/suspend",
            json={"orderId": order.id, "action": "suspend"},
            headers=service_headers,
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        panel_factory.assert_not_called()
        db_session.refresh(order)
        assert order.status == OrderStatus.SUSPENDED

    def test_suspend_with_server(self, client, db_session, active_order, panel, service_headers):
        response = client.post(
            "/internal/servers/suspend",
            json={"orderId": active_order.id, "action": "suspend"},
            headers=service_headers,
        )

        assert response.status_code == 200
        panel.suspend_server.assert_called_once_with(42)
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.SUSPENDED
        assert active_order.suspension_reason == SuspensionReason.MANUAL

    def test_unsuspend(self, client, db_session, active_order, panel, customer_headers):
        active_order.status = OrderStatus.SUSPENDED
        active_order.suspension_reason = SuspensionReason.MANUAL
        db_session.commit()

        response = client.post(
            "/servers/suspend",
            json={"orderId": active_order.id, "action": "unsuspend"},
            headers=customer_headers,
        )

        assert response.status_code == 200
        panel.unsuspend_server.assert_called_once_with(42)
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.ACTIVE
        assert active_order.suspension_reason is None

    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.FAILED, OrderStatus.PAYMENT_FAILED])
    def test_only_suspended_orders_can_be_unsuspended(self, client, db_session, active_order, panel, customer_headers, status):
        active_order.status = status
        db_session.commit()

        response = client.post(
            "/servers/suspend",
            json={"orderId": active_order.id, "action": "unsuspend"},
            headers=customer_headers,
        )

        assert response.status_code == 409
        panel.unsuspend_server.assert_not_called()
        db_session.refresh(active_order)
        assert active_order.status == status

    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED, OrderStatus.SUSPENDED])
    def test_only_active_orders_can_be_suspended(self, client, db_session, active_order, panel, customer_headers, status):
        active_order.status = status
        db_session.commit()

        response = client.post(
            "/servers/suspend",
            json={"orderId": active_order.id, "action": "suspend"},
            headers=customer_headers,
        )

        assert response.status_code == 409
        panel.suspend_server.assert_not_called()
        db_session.refresh(active_order)
        assert active_order.status == status

    def test_server_missing_on_panel(self, client, db_session, active_order, panel, service_headers):
        panel.suspend_server.side_effect = PanelServerNotFound("gone")

        response = client.post(
            "/internal/servers/suspend",
            json={"orderId": active_order.id, "action": "suspend"},
            headers=service_headers,
        )

        assert response.status_code == 404
        assert "does not exist on the panel" in response.json()["detail"]
        db_session.refresh(active_order)
        assert active_order.status == OrderStatus.ACTIVE

    def test_cancelled_order_cannot_be_unsuspended(self, client, db_session, active_order, panel, service_headers):
        active_order.status = OrderStatus.CANCELLED
        db_session.commit()

        response = client.post(
            "/internal/servers/suspend",
            json={"orderId": active_order.id, "action": "unsuspend"},
            headers=service_headers,
        )

        assert response.status_code == 409
        panel.unsuspend_server.assert_not_called()

    def test_unknown_action(self, client, active_order, service_headers):
        response = client.post(
            "/internal/servers/suspend",
            json={"orderId": active_order.id, "action": "reboot"},
            headers=service_headers,
        )
        assert response.status_code == 422

    def test_other_user_cannot_suspend(self, client, active_order, other_customer, panel):
        response = client.post(
            "/servers/suspend",
            json={"orderId": active_order.id, "action": "suspend"},
            headers=auth_headers_for(other_customer.user_id),
        )
        assert response.status_code == 403
        panel.suspend_server.assert_not_called()

    def test_admin_can_suspend_any_order(self, client, active_order, admin_headers, panel):
        response = client.post(
            "/servers/suspend",
            json={"orderId": active_order.id, "action": "suspend"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        panel.suspend_server.assert_called_once_with(42)
