import logging
import re
from typing import Any, Dict

from sqlalchemy.orm import Session

from cloudserve.crud import order as order_crud
from cloudserve.errors.order_errors import OrderNotFound, OrderAccessDenied
from cloudserve.services.provisioning import PanelFactory

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9]{8}$")


class InvalidServerIdentifier(ValueError):
    pass


def is_valid_identifier(identifier: str) -> bool:
    return bool(identifier) and IDENTIFIER_PATTERN.match(identifier) is not None


class StatusService:
    """
    Live state of a customer's own server.

    Checks run cheapest first: identifier format, then ownership, and only
    then is the panel client built and queried.
    """

    def __init__(self, db: Session, panel_factory: PanelFactory):
        self.db = db
        self._panel_factory = panel_factory

    def get_status(self, identifier: str, user_id: str) -> Dict[str, Any]:
        if not is_valid_identifier(identifier):
            raise InvalidServerIdentifier("Invalid server identifier")

        order = order_crud.get_order_by_identifier(self.db, identifier)
        if order is None:
            raise OrderNotFound("Server not found")
        if order.user_id != user_id:
            logger.warning(f"User {user_id} asked for the status of a server they do not own")
            raise OrderAccessDenied("Access denied")

        panel = self._panel_factory()
        return panel.fetch_resources(identifier)
