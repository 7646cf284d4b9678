import logging

import requests
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudserve.auth.permissions import require_admin
from cloudserve.crud import order as order_crud
from cloudserve.database import transactional
from cloudserve.dependencies import get_db, get_panel_client, get_panel_factory
from cloudserve.endpoints.servers import provision_response
from cloudserve.errors.panel_errors import PanelError
from cloudserve.schemas.order import OrderAdminResponse, OrderStatusOverride
from cloudserve.schemas.panel_sync import PanelSyncResponse
from cloudserve.schemas.provisioning import ProvisionResponse
from cloudserve.services.order_lifecycle import transition
from cloudserve.services.panel_client import PterodactylClient
from cloudserve.services.panel_sync import PanelSyncService
from cloudserve.services.provisioning import PanelFactory, ProvisioningService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _get_order_or_404(db: Session, order_id: str):
    order = order_crud.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/orders/{order_id}", response_model=OrderAdminResponse)
def get_order(
    order_id: str,
    current_user=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _get_order_or_404(db, order_id)


@router.patch("/orders/{order_id}/status", response_model=OrderAdminResponse)
def override_order_status(
    order_id: str,
    body: OrderStatusOverride,
    current_user=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Set any status, bypassing the lifecycle rules. The panel is not touched.
    """
    order = _get_order_or_404(db, order_id)
    with transactional(db):
        transition(order, body.status, force=True)
    logger.info(f"Admin {current_user['id']} set order {order.display_id} to {body.status.value}")
    return order


@router.post("/orders/{order_id}/provision", response_model=ProvisionResponse, response_model_exclude_none=True)
def reprovision_order(
    order_id: str,
    current_user=Depends(require_admin),
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Re-run provisioning for an order whose server was never created.
    """
    order = _get_order_or_404(db, order_id)
    logger.info(f"Admin {current_user['id']} re-triggered provisioning of order {order.display_id}")
    return provision_response(ProvisioningService(db, panel_factory).reprovision(order))


@router.post("/servers/sync", response_model=PanelSyncResponse)
def sync_panel_servers(
    current_user=Depends(require_admin),
    db: Session = Depends(get_db),
    panel: PterodactylClient = Depends(get_panel_client),
):
    """
    Import panel servers that have no order and retire orders whose server is gone.
    """
    try:
        results = PanelSyncService(db, panel).sync()
    except (PanelError, requests.RequestException) as e:
        logger.error(f"Panel sync failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch servers from the panel")

    message = (
        f"Imported {results.imported}, updated {results.updated}, "
        f"deleted {results.deleted}, skipped {results.skipped}"
    )
    return {"success": True, "results": results, "message": message}
