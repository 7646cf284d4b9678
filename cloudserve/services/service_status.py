"""
Public service-status page: one health word per product and per node.

No server counts or per-server metrics leave this module.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List

import requests
from sqlalchemy.orm import Session

from cloudserve.crud import order as order_crud
from cloudserve.crud import product as product_crud
from cloudserve.errors.panel_errors import PanelError, PanelConfigurationError, PanelRequestError
from cloudserve.services.panel_client import PterodactylClient

logger = logging.getLogger(__name__)

STATIC_SERVICES = ("VPS Hosting", "Web Hosting", "Bot Hosting")

MAX_STATUS_WORKERS = 8


def product_health(states: List[str]) -> str:
    """Health of one product from the live states of its servers ('error' = unreachable, 'unknown' = not checked)."""
    total = len(states)
    if total == 0:
        return "operational"
    if states.count("unknown") == total:
        return "unknown"
    running = states.count("running")
    offline = sum(1 for s in states if s in ("offline", "stopped"))
    errors = states.count("error")
    if errors == total:
        return "down"
    if errors > 0 or (offline > 0 and running == 0):
        return "degraded"
    if offline > 0 and running > 0:
        return "partial"
    return "operational"


def overall_health(services: List[Dict[str, Any]], nodes: List[Dict[str, Any]]) -> str:
    service_states = {s["status"] for s in services}
    node_states = {n["status"] for n in nodes}
    if "down" in service_states or "down" in node_states:
        return "down"
    if "degraded" in service_states or "maintenance" in node_states:
        return "degraded"
    if "partial" in service_states:
        return "partial"
    return "operational"


class ServiceStatusService:
    def __init__(self, db: Session, panel: PterodactylClient):
        self.db = db
        self.panel = panel

    def _server_state(self, identifier: str) -> str:
        try:
            live = self.panel.get_server_resources(identifier)
        except PanelConfigurationError as e:
            logger.info(f"Status of server {identifier} not checked: {e}")
            return "unknown"
        except (PanelError, requests.RequestException) as e:
            logger.warning(f"Status of server {identifier} unavailable: {e}")
            return "error"
        return live.get("current_state") or "unknown"

    def _node_status(self, node: Dict[str, Any]) -> Dict[str, Any]:
        node_id = node["id"]
        status = "unknown"
        memory_total = node.get("memory") or 0
        disk_total = node.get("disk") or 0
        memory_used = disk_used = 0
        try:
            self.panel.get_node_configuration(node_id)
            status = "operational"
        except PanelRequestError as e:
            if e.status_code == 500:
                status = "down"
        except requests.RequestException as e:
            logger.warning(f"Node {node_id} configuration unavailable: {e}")

        try:
            allocations = self.panel.list_allocations(node_id)
            assigned = sum(1 for a in allocations if a.get("assigned"))
            share = assigned / max(len(allocations), 1)
            memory_used = round(share * memory_total)
            disk_used = round(share * disk_total)
        except (PanelError, requests.RequestException) as e:
            logger.warning(f"Node {node_id} allocations unavailable: {e}")

        if node.get("maintenance_mode"):
            status = "maintenance"

        return {
            "id": node_id,
            "name": node.get("name") or f"Node {node_id}",
            "location": f"Location {node.get('location_id')}",
            "status": status,
            "memory_used": memory_used,
            "memory_total": memory_total,
            "disk_used": disk_used,
            "disk_total": disk_total,
        }

    def _nodes(self) -> List[Dict[str, Any]]:
        try:
            nodes = self.panel.list_nodes()
        except PanelConfigurationError:
            logger.info("No application API key available for node status")
            return []
        except (PanelError, requests.RequestException) as e:
            logger.error(f"Failed to fetch panel nodes: {e}")
            return []
        return [self._node_status(node) for node in nodes]

    def get_service_status(self) -> Dict[str, Any]:
        products = product_crud.get_active_products(self.db)
        orders = order_crud.get_active_orders_with_identifier(self.db)

        with ThreadPoolExecutor(max_workers=MAX_STATUS_WORKERS) as pool:
            states = list(pool.map(self._server_state, [o.pterodactyl_identifier for o in orders]))

        states_by_product: Dict[str, List[str]] = {}
        for order, state in zip(orders, states):
            states_by_product.setdefault(order.product_name, []).append(state)

        services = [
            {"name": product.name, "status": product_health(states_by_product.get(product.name, []))}
            for product in products
        ]
        known = {s["name"] for s in services}
        services.extend({"name": name, "status": "operational"} for name in STATIC_SERVICES if name not in known)

        nodes = self._nodes()
        overall = overall_health(services, nodes)
        logger.info(f"Service status check complete: {overall}, {len(nodes)} nodes")

        return {
            "services": services,
            "nodes": nodes,
            "overall_status": overall,
            "last_updated": datetime.now(timezone.utc),
        }
