import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests

from cloudserve.config import Config, normalize_base_url
from cloudserve.errors.panel_errors import (
    PanelConfigurationError,
    PanelRequestError,
    PanelServerNotFound,
    NoNodesAvailable,
    NoFreeAllocations,
)

logger = logging.getLogger(__name__)

APPLICATION_KEY_PREFIX = "ptla_"
CLIENT_KEY_PREFIX = "ptlc_"

BYTES_PER_MB = 1024 * 1024

KNOWN_STATES = {"running", "starting", "stopping", "offline", "stopped"}


def check_key_scopes(application_key: Optional[str], client_key: Optional[str]) -> None:
    """
    Refuse an application key that is really a client key, and the reverse.

    Keys without a recognizable prefix (older panels) are let through.
    """
    if application_key and application_key.startswith(CLIENT_KEY_PREFIX):
        raise PanelConfigurationError("PTERODACTYL_API_KEY holds a client API key, an application key is required")
    if client_key and client_key.startswith(APPLICATION_KEY_PREFIX):
        raise PanelConfigurationError("PTERODACTYL_CLIENT_API_KEY holds an application API key, a client key is required")


def normalize_state(value: Optional[str]) -> str:
    state = (value or "").lower()
    return state if state in KNOWN_STATES else "unknown"


class PterodactylClient:
    """
    Thin wrapper over the panel's application and client APIs.

    Application endpoints (users, nodes, allocations, servers) are called with
    the application key; per-server details and live resources with the
    client key.
    """

    def __init__(
        self,
        base_url: str,
        application_key: Optional[str],
        client_key: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = normalize_base_url(base_url)
        if not self.base_url:
            raise PanelConfigurationError("PTERODACTYL_URL is not set")
        check_key_scopes(application_key, client_key)
        self.application_key = application_key
        self.client_key = client_key
        self.timeout = timeout
        self._shared_session = session
        self._local = threading.local()

    @classmethod
    def from_config(cls, cfg: Config) -> "PterodactylClient":
        return cls(
            base_url=cfg.PTERODACTYL_URL,
            application_key=cfg.PTERODACTYL_API_KEY,
            client_key=cfg.PTERODACTYL_CLIENT_API_KEY,
            timeout=cfg.PANEL_TIMEOUT_SECONDS,
        )

    # --- Transport ---

    @property
    def session(self) -> requests.Session:
        """The injected session, or one owned by the calling thread."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _headers(self, scope: str) -> Dict[str, str]:
        key = self.application_key if scope == "application" else self.client_key
        if not key:
            name = "PTERODACTYL_API_KEY" if scope == "application" else "PTERODACTYL_CLIENT_API_KEY"
            raise PanelConfigurationError(f"{name} is not set")
        return {
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, scope: str = "application", **kwargs) -> Dict[str, Any]:
        headers = self._headers(scope)
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )
        if not response.ok:
            logger.error(f"Panel {method} {path} failed: {response.status_code} - {response.text}")
            raise PanelRequestError(method, path, response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # --- Users ---

    def find_user_by_email(self, email: str) -> Optional[int]:
        data = self._request("GET", "/api/application/users", params={"filter[email]": email})
        users = data.get("data") or []
        if not users:
            return None
        return users[0]["attributes"]["id"]

    def create_user(self, email: str, username: str, first_name: str, last_name: str) -> int:
        data = self._request(
            "POST",
            "/api/application/users",
            json={
                "email": email,
                "username": username,
                "first_name": first_name,
                "last_name": last_name,
            },
        )
        return data["attributes"]["id"]

    def list_users(self, per_page: int = 500) -> List[Dict[str, Any]]:
        data = self._request("GET", "/api/application/users", params={"per_page": per_page})
        return [item["attributes"] for item in data.get("data") or []]

    # --- Capacity ---

    def list_nodes(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/api/application/nodes")
        return [item["attributes"] for item in data.get("data") or []]

    def get_first_node(self) -> int:
        nodes = self.list_nodes()
        if not nodes:
            raise NoNodesAvailable()
        return nodes[0]["id"]

    def get_node_configuration(self, node_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/application/nodes/{node_id}/configuration")

    def list_allocations(self, node_id: int, unassigned_only: bool = False) -> List[Dict[str, Any]]:
        params = {"filter[server_id]": "null"} if unassigned_only else None
        data = self._request("GET", f"/api/application/nodes/{node_id}/allocations", params=params)
        allocations = [item["attributes"] for item in data.get("data") or []]
        if unassigned_only:
            allocations = [a for a in allocations if not a.get("assigned")]
        return allocations

    def get_free_allocation(self, node_id: int) -> int:
        allocations = self.list_allocations(node_id, unassigned_only=True)
        if not allocations:
            raise NoFreeAllocations()
        return allocations[0]["id"]

    # --- Servers ---

    def create_server(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", "/api/application/servers", json=payload)
        return data["attributes"]

    def list_servers(self, per_page: int = 500) -> List[Dict[str, Any]]:
        data = self._request("GET", "/api/application/servers", params={"per_page": per_page})
        return [item["attributes"] for item in data.get("data") or []]

    def _server_action(self, server_id: int, action: str) -> None:
        try:
            self._request("POST", f"/api/application/servers/{server_id}/{action}")
        except PanelRequestError as e:
            if e.status_code == 404:
                raise PanelServerNotFound(f"Server {server_id} does not exist on the panel") from e
            raise

    def suspend_server(self, server_id: int) -> None:
        self._server_action(server_id, "suspend")

    def unsuspend_server(self, server_id: int) -> None:
        self._server_action(server_id, "unsuspend")

    def get_server_details(self, identifier: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/client/servers/{identifier}", scope="client").get("attributes") or {}

    def get_server_resources(self, identifier: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/client/servers/{identifier}/resources", scope="client").get("attributes") or {}

    def fetch_resources(self, identifier: str) -> Dict[str, Any]:
        """
        Live state and usage of one server merged with its configured limits.

        Details and resources are requested concurrently. A failed details
        call leaves the limits at zero; a failed resources call fails the
        whole operation.
        """
        with ThreadPoolExecutor(max_workers=2) as pool:
            details_future = pool.submit(self.get_server_details, identifier)
            resources_future = pool.submit(self.get_server_resources, identifier)

            try:
                details = details_future.result()
            except Exception as e:
                logger.warning(f"Server details for {identifier} unavailable, limits reported as zero: {e}")
                details = {}
            live = resources_future.result()

        usage = live.get("resources") or {}
        limits = details.get("limits") or {}

        return {
            "current_state": normalize_state(live.get("current_state")),
            "is_suspended": bool(live.get("is_suspended", details.get("is_suspended", False))),
            "server_name": details.get("name") or "",
            "resources": {
                "memory_bytes": usage.get("memory_bytes") or 0,
                "memory_limit_bytes": (limits.get("memory") or 0) * BYTES_PER_MB,
                "cpu_absolute": usage.get("cpu_absolute") or 0,
                "cpu_limit": limits.get("cpu") or 0,
                "disk_bytes": usage.get("disk_bytes") or 0,
                "disk_limit_bytes": (limits.get("disk") or 0) * BYTES_PER_MB,
                "network_rx_bytes": usage.get("network_rx_bytes") or 0,
                "network_tx_bytes": usage.get("network_tx_bytes") or 0,
                "uptime": usage.get("uptime") or 0,
            },
        }
