import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cloudserve.crud import order as order_crud
from cloudserve.crud import product as product_crud
from cloudserve.crud import profile as profile_crud
from cloudserve.database import transactional
from cloudserve.errors.order_errors import OrderNotFound, OrderAccessDenied, InvalidStatusTransition
from cloudserve.errors.panel_errors import PanelError
from cloudserve.models import Order, OrderStatus, Product, ProductPlan, ProductVariant, SuspensionReason
from cloudserve.schemas.provisioning import ProvisionRequest
from cloudserve.services.game_presets import (
    ProvisioningOverrides,
    ResolvedProvisioning,
    normalize_game_id,
    product_overrides,
    resolve_provisioning,
)
from cloudserve.services.order_lifecycle import can_transition, transition
from cloudserve.services.panel_client import PterodactylClient

logger = logging.getLogger(__name__)

PANEL_USER_LAST_NAME = "CloudServe"

DEFAULT_IO_WEIGHT = 500
DEFAULT_FEATURE_LIMITS = {"databases": 1, "backups": 3, "allocations": 1}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_@.]")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

PanelFactory = Callable[[], PterodactylClient]


def sanitize_string(value: str, max_length: int = 100) -> str:
    return _UNSAFE_NAME_CHARS.sub("", value or "")[:max_length]


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def panel_username(email: str, now_ms: Optional[int] = None) -> str:
    """'john.doe+x@example.com' -> 'johndoex_<base36 ms timestamp>'"""
    local_part = email.split("@")[0]
    stem = re.sub(r"[^a-zA-Z0-9]", "", local_part)[:20]
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{stem}_{to_base36(now_ms)}"


def server_name(game_id: str, plan_name: str, order_id: str) -> str:
    return f"{sanitize_string(game_id, 20)}-{sanitize_string(plan_name, 30)}-{order_id[:8]}".lower()


def build_server_payload(
    request: ProvisionRequest,
    resolved: ResolvedProvisioning,
    panel_user_id: int,
    allocation_id: int,
) -> Dict[str, Any]:
    """Panel create-server body; memory and disk are already MB and pass through unchanged."""
    return {
        "name": server_name(request.game_id, request.plan_name, request.order_id),
        "user": panel_user_id,
        "egg": resolved.egg_id,
        "docker_image": resolved.docker_image,
        "startup": resolved.startup,
        "environment": resolved.environment,
        "limits": {
            "memory": request.ram,
            "swap": 0,
            "disk": request.disk,
            "io": DEFAULT_IO_WEIGHT,
            "cpu": request.cpu,
        },
        "feature_limits": dict(DEFAULT_FEATURE_LIMITS),
        "allocation": {"default": allocation_id},
    }


@dataclass
class ProvisionResult:
    success: bool
    server_id: Optional[int] = None
    server_identifier: Optional[str] = None
    error: Optional[str] = None
    # conflict, invalid or upstream
    kind: Optional[str] = None


class ProvisioningService:
    """
    Creates, suspends and unsuspends the panel server behind an order.

    The panel client is built on first use, so operations that end up
    touching only the database never need panel configuration.
    """

    def __init__(self, db: Session, panel_factory: PanelFactory):
        self.db = db
        self._panel_factory = panel_factory
        self._panel: Optional[PterodactylClient] = None

    @property
    def panel(self) -> PterodactylClient:
        if self._panel is None:
            self._panel = self._panel_factory()
        return self._panel

    def _get_order(self, order_id: str) -> Order:
        order = order_crud.get_order(self.db, order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    def _resolve_panel_user(self, email: str) -> int:
        user_id = self.panel.find_user_by_email(email)
        if user_id is not None:
            logger.info(f"Found existing panel user {user_id}")
            return user_id
        local_part = email.split("@")[0]
        user_id = self.panel.create_user(
            email=email,
            username=panel_username(email),
            first_name=local_part[:50],
            last_name=PANEL_USER_LAST_NAME,
        )
        logger.info(f"Created panel user {user_id}")
        return user_id

    def provision(self, request: ProvisionRequest) -> ProvisionResult:
        """
        Create the panel server for an order and record it as active.

        Any failure leaves the order untouched and is returned as
        ProvisionResult(success=False); marking the order failed is up to
        the caller. Raises OrderNotFound for an unknown order,
        OrderAccessDenied when request.user_id does not own it, and lets
        configuration errors propagate.
        """
        order = self._get_order(request.order_id)
        if order.user_id != request.user_id:
            raise OrderAccessDenied(f"Order {order.display_id} does not belong to user {request.user_id}")

        if order.pterodactyl_server_id is not None:
            return ProvisionResult(success=False, error="Order already has a panel server", kind="conflict")
        if not can_transition(order.status, OrderStatus.ACTIVE):
            return ProvisionResult(
                success=False, error=f"Order in status {order.status.value} cannot be provisioned", kind="conflict"
            )

        try:
            resolved = resolve_provisioning(
                request.game_id,
                ProvisioningOverrides(
                    egg_id=request.egg_id,
                    nest_id=request.nest_id,
                    docker_image=request.docker_image,
                    startup_command=request.startup_command,
                ),
                version=request.minecraft_version,
            )
        except ValueError as e:
            return ProvisionResult(success=False, error=str(e), kind="invalid")

        logger.info(f"Provisioning order {order.display_id} ({request.game_id}, {request.plan_name})")
        try:
            panel_user_id = self._resolve_panel_user(request.user_email)
            node_id = self.panel.get_first_node()
            allocation_id = self.panel.get_free_allocation(node_id)
            server = self.panel.create_server(
                build_server_payload(request, resolved, panel_user_id, allocation_id)
            )
        except (PanelError, requests.RequestException) as e:
            logger.error(f"Provisioning order {order.display_id} failed: {e}")
            return ProvisionResult(success=False, error=str(e), kind="upstream")

        with transactional(self.db):
            order.pterodactyl_server_id = server["id"]
            order.pterodactyl_identifier = server["identifier"]
            transition(order, OrderStatus.ACTIVE)

        logger.info(f"Order {order.display_id} provisioned as panel server {server['id']} ({server['identifier']})")
        return ProvisionResult(success=True, server_id=server["id"], server_identifier=server["identifier"])

    def mark_failed(self, order: Order) -> None:
        with transactional(self.db):
            transition(order, OrderStatus.FAILED)

    def request_for_order(
        self,
        order: Order,
        plan: ProductPlan,
        product: Optional[Product],
        variant: Optional[ProductVariant],
        email: str,
    ) -> ProvisionRequest:
        """Raises pydantic.ValidationError when the catalog values are out of range."""
        overrides = product_overrides(product, variant)
        return ProvisionRequest(
            order_id=order.id,
            game_id=normalize_game_id(order.product_name),
            plan_name=order.plan_name,
            ram=plan.ram,
            cpu=plan.cpu,
            disk=plan.disk,
            user_id=order.user_id,
            user_email=email,
            variant_id=order.variant_id,
            egg_id=overrides.egg_id,
            nest_id=overrides.nest_id,
            docker_image=overrides.docker_image,
            startup_command=overrides.startup_command,
        )

    def reprovision(self, order: Order) -> ProvisionResult:
        """
        Admin re-trigger for an order without a panel server.

        Plan, variant and email are looked up again from the catalog and the
        profile; a panel failure leaves the order failed.
        """
        plan = product_crud.find_plan_by_names(self.db, order.product_name, order.plan_name)
        if plan is None:
            return ProvisionResult(success=False, error="The plan of this order no longer exists", kind="invalid")
        profile = profile_crud.get_profile(self.db, order.user_id)
        if profile is None or not profile.email:
            return ProvisionResult(success=False, error="The customer has no email on file", kind="invalid")
        variant = product_crud.get_variant(self.db, order.variant_id)

        try:
            request = self.request_for_order(order, plan, plan.product, variant, profile.email)
        except ValidationError as e:
            logger.error(f"Order {order.display_id} cannot be provisioned: {e}")
            return ProvisionResult(success=False, error="Invalid provisioning parameters", kind="invalid")

        result = self.provision(request)
        if not result.success and result.kind == "upstream" and order.status != OrderStatus.FAILED:
            self.mark_failed(order)
        return result

    def set_suspension(self, order_id: str, action: str) -> Order:
        """
        Suspend an active order or unsuspend a suspended one.

        With a panel server the panel is called first and the status only
        changes once it succeeded; without one the status is updated
        directly and the panel is never contacted. Any other starting
        status raises InvalidStatusTransition.
        """
        if action not in ("suspend", "unsuspend"):
            raise ValueError(f"Unknown action: {action}")
        order = self._get_order(order_id)
        if action == "suspend":
            required, target = OrderStatus.ACTIVE, OrderStatus.SUSPENDED
        else:
            required, target = OrderStatus.SUSPENDED, OrderStatus.ACTIVE
        if order.status != required:
            raise InvalidStatusTransition(order.status, target)

        if order.pterodactyl_server_id is not None:
            if action == "suspend":
                self.panel.suspend_server(order.pterodactyl_server_id)
            else:
                self.panel.unsuspend_server(order.pterodactyl_server_id)
        else:
            logger.info(f"Order {order.display_id} has no panel server, updating status only")

        with transactional(self.db):
            transition(order, target)
            if target == OrderStatus.SUSPENDED:
                order.suspension_reason = SuspensionReason.MANUAL
        return order

    def suspend_panel_server(self, order: Order) -> bool:
        """Suspend the panel server without touching the order status. Returns False when there is none."""
        if order.pterodactyl_server_id is None:
            return False
        self.panel.suspend_server(order.pterodactyl_server_id)
        logger.info(f"Suspended panel server {order.pterodactyl_server_id} of order {order.display_id}")
        return True
