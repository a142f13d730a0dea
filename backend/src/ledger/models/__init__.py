"""SQLAlchemy ORM models for the entitlement ledger."""
# Import all models here to ensure they are registered with Alembic

from ledger.models.base import Base
from ledger.models.profile import Profile
from ledger.models.plan import Plan, PlanInterval
from ledger.models.subscription import Subscription, SubscriptionStatus, SubscriptionHistory, RENEWABLE_STATUSES
from ledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from ledger.models.order import Order, OrderStatus
from ledger.models.stock_source import StockSource, StockSourceAudit

__all__ = [
    "Base",
    "Profile",
    "Plan",
    "PlanInterval",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionHistory",
    "RENEWABLE_STATUSES",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Order",
    "OrderStatus",
    "StockSource",
    "StockSourceAudit",
]
