from .profile import AppRole, Profile, UserRoleAssignment
from .product import Product, ProductPlan, ProductVariant
from .order import OrderStatus, Order, SuspensionReason
from .invoice import InvoiceStatus, Invoice
from .webhook_event import WebhookEvent
