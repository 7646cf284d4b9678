# cloudserve/errors/panel_errors.py

from cloudserve.errors.config_errors import ConfigurationError


class PanelError(Exception):
    """Base exception for game panel errors."""
    pass

class PanelConfigurationError(ConfigurationError):
    """Raised when the panel URL or API keys are missing, or the two key scopes are swapped."""
    pass

class PanelRequestError(PanelError):
    """Raised when the panel answers with a non-2xx status."""

    def __init__(self, method: str, path: str, status_code: int, body: str):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {path} failed with {status_code}: {body}")

class PanelServerNotFound(PanelError):
    """Raised when the panel no longer knows the server an order points to."""
    pass

class NoNodesAvailable(PanelError):
    """Raised when the panel reports no nodes."""

    def __init__(self):
        super().__init__("no nodes available")

class NoFreeAllocations(PanelError):
    """Raised when the chosen node has no unassigned allocation."""

    def __init__(self):
        super().__init__("no free allocations available")

class PanelWebhookSignatureError(PanelError):
    """Raised when a panel webhook delivery carries a missing or wrong signature."""
    pass
