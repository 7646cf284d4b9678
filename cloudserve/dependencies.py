from cloudserve.config import config
from cloudserve.database import SessionLocal
from cloudserve.services.billing_gateway import BillingGateway
from cloudserve.services.panel_client import PterodactylClient
from cloudserve.services.provisioning import PanelFactory


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_panel_client() -> PterodactylClient:
    """Raises PanelConfigurationError when the panel URL is missing or the keys are swapped."""
    return PterodactylClient.from_config(config)


def get_panel_factory() -> PanelFactory:
    """For handlers that must finish their own checks before the panel configuration matters."""
    return lambda: PterodactylClient.from_config(config)


def get_billing_gateway() -> BillingGateway:
    return BillingGateway.from_config(config)
