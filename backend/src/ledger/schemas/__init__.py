"""Pydantic schemas for API request/response validation."""

from ledger.schemas.balance import (
    Balance,
    BalanceDeduct,
)
from ledger.schemas.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceList,
)
from ledger.schemas.order import (
    DownloadLink,
    Order,
    OrderCreate,
    OrderList,
    OrderLookup,
    OrderPlaced,
    OrderUpdate,
    StockInfo,
)
from ledger.schemas.plan import (
    Plan,
    PlanCreate,
    PlanList,
    PlanUpdate,
)
from ledger.schemas.renewal import (
    RenewalProcessed,
    RenewalResult,
    RenewalSkipped,
)
from ledger.schemas.stock_source import (
    StockSource,
    StockSourceActive,
    StockSourceAuditEntry,
    StockSourceAuditLog,
    StockSourceCost,
    StockSourceCreate,
    StockSourceList,
    StockSourceUpdate,
)
from ledger.schemas.subscription import (
    SubscribeRequest,
    SubscribeResponse,
    Subscription,
    SubscriptionCancel,
    SubscriptionPlanChange,
    SubscriptionState,
    SubscriptionWithPlan,
)

__all__ = [
    # Balance schemas
    "Balance",
    "BalanceDeduct",
    # Plan schemas
    "Plan",
    "PlanCreate",
    "PlanUpdate",
    "PlanList",
    # Subscription schemas
    "SubscribeRequest",
    "SubscribeResponse",
    "Subscription",
    "SubscriptionCancel",
    "SubscriptionPlanChange",
    "SubscriptionState",
    "SubscriptionWithPlan",
    # Invoice schemas
    "Invoice",
    "InvoiceItem",
    "InvoiceList",
    # Order schemas
    "Order",
    "OrderCreate",
    "OrderUpdate",
    "OrderPlaced",
    "OrderList",
    "OrderLookup",
    "DownloadLink",
    "StockInfo",
    # Stock source schemas
    "StockSource",
    "StockSourceCreate",
    "StockSourceUpdate",
    "StockSourceCost",
    "StockSourceActive",
    "StockSourceList",
    "StockSourceAuditEntry",
    "StockSourceAuditLog",
    # Renewal schemas
    "RenewalProcessed",
    "RenewalSkipped",
    "RenewalResult",
]
