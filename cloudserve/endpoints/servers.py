import logging

import requests
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cloudserve.auth.jwt_handler import verify_jwt_token
from cloudserve.auth.permissions import is_admin
from cloudserve.core.security import verify_service_key
from cloudserve.crud import order as order_crud
from cloudserve.dependencies import get_db, get_panel_factory
from cloudserve.errors.order_errors import OrderNotFound, OrderAccessDenied, InvalidStatusTransition
from cloudserve.errors.panel_errors import PanelError, PanelServerNotFound
from cloudserve.schemas.provisioning import ProvisionRequest, ProvisionResponse, SuspendRequest, SuspendResponse
from cloudserve.schemas.server_status import ServerStatusRequest, ServerStatusResponse
from cloudserve.services.provisioning import PanelFactory, ProvisionResult, ProvisioningService
from cloudserve.services.server_status import InvalidServerIdentifier, StatusService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/servers", tags=["Servers"])
internal_router = APIRouter(
    prefix="/internal/servers",
    tags=["Internal"],
    dependencies=[Depends(verify_service_key)],
)

_FAILURE_STATUS = {"conflict": 409, "invalid": 400, "upstream": 502}


def provision_response(result: ProvisionResult):
    response = ProvisionResponse(
        success=result.success,
        server_id=result.server_id,
        server_identifier=result.server_identifier,
        error=result.error,
    )
    if result.success:
        return response
    return JSONResponse(
        status_code=_FAILURE_STATUS.get(result.kind, 502),
        content=response.model_dump(by_alias=True, exclude_none=True),
    )


def _set_suspension(service: ProvisioningService, order_id: str, action: str) -> SuspendResponse:
    try:
        service.set_suspension(order_id, action)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PanelServerNotFound:
        raise HTTPException(status_code=404, detail="Server does not exist on the panel. It may have been deleted.")
    except (PanelError, requests.RequestException) as e:
        logger.error(f"Failed to {action} server of order {order_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to {action} server. Please try again.")
    return SuspendResponse(success=True)


def _provision(service: ProvisioningService, body: ProvisionRequest):
    try:
        result = service.provision(body)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except OrderAccessDenied:
        raise HTTPException(status_code=403, detail="Order does not belong to this user")
    return provision_response(result)


def _owned_order(db: Session, order_id: str, current_user: dict):
    order = order_crud.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.user_id != current_user["id"] and not is_admin(db, current_user["id"]):
        raise HTTPException(status_code=403, detail="Access denied")
    return order


@router.post("/status", response_model=ServerStatusResponse)
def get_server_status(
    body: ServerStatusRequest,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Live state and usage of one of the caller's own servers.
    """
    service = StatusService(db, panel_factory)
    try:
        return service.get_status(body.identifier, current_user["id"])
    except InvalidServerIdentifier:
        raise HTTPException(status_code=400, detail="Invalid server identifier")
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Server not found")
    except OrderAccessDenied:
        raise HTTPException(status_code=403, detail="Access denied")
    except (PanelError, requests.RequestException) as e:
        logger.error(f"Fetching status of server {body.identifier} failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch server status")


@router.post("/suspend", response_model=SuspendResponse)
def suspend_server(
    body: SuspendRequest,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Suspend or unsuspend a server. Allowed for the order owner and admins.
    """
    order = _owned_order(db, body.order_id, current_user)
    return _set_suspension(ProvisioningService(db, panel_factory), order.id, body.action)


@router.post("/provision", response_model=ProvisionResponse, response_model_exclude_none=True)
def provision_server(
    body: ProvisionRequest,
    current_user=Depends(verify_jwt_token),
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Create the panel server of an order that has none. Allowed for the order owner and admins;
    the body's userId must own the order.
    """
    _owned_order(db, body.order_id, current_user)
    return _provision(ProvisioningService(db, panel_factory), body)


@internal_router.post("/provision", response_model=ProvisionResponse, response_model_exclude_none=True)
def internal_provision_server(
    body: ProvisionRequest,
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Server-to-server provisioning call. The body's userId must own the order.
    """
    return _provision(ProvisioningService(db, panel_factory), body)


@internal_router.post("/suspend", response_model=SuspendResponse)
def internal_suspend_server(
    body: SuspendRequest,
    db: Session = Depends(get_db),
    panel_factory: PanelFactory = Depends(get_panel_factory),
):
    """
    Server-to-server suspend/unsuspend call.
    """
    return _set_suspension(ProvisioningService(db, panel_factory), body.order_id, body.action)
