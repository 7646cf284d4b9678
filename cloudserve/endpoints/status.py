from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cloudserve.dependencies import get_db, get_panel_client
from cloudserve.schemas.server_status import ServiceStatusResponse
from cloudserve.services.panel_client import PterodactylClient
from cloudserve.services.service_status import ServiceStatusService

router = APIRouter(prefix="/status", tags=["Status"])


@router.get("/services", response_model=ServiceStatusResponse)
def get_service_status(
    db: Session = Depends(get_db),
    panel: PterodactylClient = Depends(get_panel_client),
):
    """
    Public health of every product and panel node.
    """
    return ServiceStatusService(db, panel).get_service_status()
