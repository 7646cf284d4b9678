# cloudserve/errors/config_errors.py

class ConfigurationError(Exception):
    """Raised when a required setting is missing or holds the wrong kind of value."""
    pass
