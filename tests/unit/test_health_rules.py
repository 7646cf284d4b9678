import pytest
from unittest.mock import Mock

from cloudserve.errors.panel_errors import PanelConfigurationError, PanelRequestError
from cloudserve.services.panel_client import PterodactylClient
from cloudserve.services.service_status import ServiceStatusService, overall_health, product_health


class TestProductHealth:
    @pytest.mark.parametrize("states,expected", [
        ([], "operational"),
        (["running", "running"], "operational"),
        (["running", "offline"], "partial"),
        (["offline", "stopped"], "degraded"),
        (["running", "error"], "degraded"),
        (["error", "error"], "down"),
        (["unknown", "unknown"], "unknown"),
        (["unknown", "running"], "operational"),
    ])
    def test_product_health(self, states, expected):
        assert product_health(states) == expected


class TestOverallHealth:
    def test_down_wins(self):
        services = [{"status": "operational"}, {"status": "down"}]
        assert overall_health(services, []) == "down"

    def test_node_down(self):
        assert overall_health([{"status": "operational"}], [{"status": "down"}]) == "down"

    def test_maintenance_is_degraded(self):
        assert overall_health([{"status": "operational"}], [{"status": "maintenance"}]) == "degraded"

    def test_partial(self):
        assert overall_health([{"status": "partial"}], [{"status": "operational"}]) == "partial"

    def test_operational(self):
        assert overall_health([{"status": "operational"}], []) == "operational"


class TestNodeStatus:
    @pytest.fixture
    def panel(self):
        return Mock(spec=PterodactylClient)

    def test_operational_node_usage_from_allocations(self, panel):
        panel.list_allocations.return_value = [{"assigned": True}, {"assigned": False}]
        service = ServiceStatusService(Mock(), panel)

        node = service._node_status({"id": 1, "name": "fsn-1", "location_id": 2, "memory": 8192, "disk": 100000})

        assert node["status"] == "operational"
        assert node["location"] == "Location 2"
        assert node["memory_used"] == 4096
        assert node["disk_used"] == 50000

    def test_node_500_is_down(self, panel):
        panel.get_node_configuration.side_effect = PanelRequestError("GET", "/cfg", 500, "boom")
        panel.list_allocations.return_value = []
        service = ServiceStatusService(Mock(), panel)

        node = service._node_status({"id": 1, "memory": 1024, "disk": 1024})

        assert node["status"] == "down"
        assert node["name"] == "Node 1"

    def test_maintenance_mode_overrides(self, panel):
        panel.list_allocations.return_value = []
        service = ServiceStatusService(Mock(), panel)

        node = service._node_status({"id": 1, "maintenance_mode": True})
        assert node["status"] == "maintenance"

    def test_nodes_without_application_key(self, panel):
        panel.list_nodes.side_effect = PanelConfigurationError("PTERODACTYL_API_KEY is not set")
        service = ServiceStatusService(Mock(), panel)

        assert service._nodes() == []

    def test_server_state_without_client_key(self, panel):
        panel.get_server_resources.side_effect = PanelConfigurationError("PTERODACTYL_CLIENT_API_KEY is not set")
        service = ServiceStatusService(Mock(), panel)

        assert service._server_state("a1b2c3d4") == "unknown"
