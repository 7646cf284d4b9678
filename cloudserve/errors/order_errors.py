# cloudserve/errors/order_errors.py

class OrderError(Exception):
    """Base exception for order-related errors."""
    pass

class OrderNotFound(OrderError):
    """Raised when an order is not found."""
    pass

class OrderAccessDenied(OrderError):
    """Raised when the caller neither owns the order nor is an admin."""
    pass

class InvalidStatusTransition(OrderError):
    """Raised when an order cannot move from its current status to the requested one."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from {current.value} to {requested.value}")
