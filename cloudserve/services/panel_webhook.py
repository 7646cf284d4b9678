import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from cloudserve.crud import order as order_crud
from cloudserve.database import transactional
from cloudserve.errors.panel_errors import PanelConfigurationError, PanelWebhookSignatureError
from cloudserve.models import OrderStatus
from cloudserve.services.order_lifecycle import can_transition, transition

logger = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(signature.lower(), compute_signature(body, secret))


class PanelWebhookService:
    """Keeps orders in step with servers deleted directly on the panel."""

    def __init__(self, db: Session, secret: str):
        if not secret:
            raise PanelConfigurationError("PTERODACTYL_WEBHOOK_SECRET is not set")
        self.db = db
        self.secret = secret

    def handle(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not verify_signature(body, signature, self.secret):
            raise PanelWebhookSignatureError("Invalid panel webhook signature")

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise ValueError(f"Malformed panel webhook payload: {e}") from e

        resource = payload.get("resource")
        action = payload.get("action")
        if resource != "server" or action != "deleted":
            logger.info(f"Ignoring panel event {resource}/{action}")
            return {"success": True, "message": "Event ignored"}

        server = payload.get("server")
        if not server:
            raise ValueError("No server data")

        server_id = server.get("id")
        identifier = server.get("identifier")
        logger.info(f"Panel server deleted: id={server_id}, identifier={identifier}, name={server.get('name')}")

        order = order_crud.get_order_by_panel_server(self.db, server_id, identifier)
        if order is None:
            logger.info(f"No order found for panel server {server_id}/{identifier}")
            return {"success": True, "message": "No matching order found"}

        with transactional(self.db):
            order.pterodactyl_server_id = None
            order.pterodactyl_identifier = None
            # The panel is authoritative about the server being gone
            transition(order, OrderStatus.DELETED, force=not can_transition(order.status, OrderStatus.DELETED))

        logger.info(f"Marked order {order.display_id} deleted after its panel server was removed")
        return {"success": True, "message": f"Order {order.display_id} deleted", "order_id": order.id}
