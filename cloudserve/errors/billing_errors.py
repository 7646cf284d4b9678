# cloudserve/errors/billing_errors.py

from cloudserve.errors.config_errors import ConfigurationError


class BillingError(Exception):
    """Base exception for billing-related errors."""
    pass

class BillingConfigurationError(ConfigurationError):
    """Raised when the Stripe secret key is missing."""
    pass

class WebhookSignatureError(BillingError):
    """Raised when an inbound billing event fails signature verification."""
    pass

class PlanNotSynced(BillingError):
    """Raised when a plan has no Stripe price yet and cannot be sold."""
    pass
