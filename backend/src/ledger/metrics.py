"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Invoice metrics
invoices_generated_total = Counter(
    "invoices_generated_total",
    "Total number of invoices generated",
    labelnames=["currency"],
)

invoices_applied_total = Counter(
    "invoices_applied_total",
    "Invoices transitioned to paid and credited",
)

# Subscription metrics
subscriptions_created_total = Counter(
    "subscriptions_created_total",
    "Total subscribe calls that produced a paid period",
    labelnames=["kind"],  # new, replaced
)

subscriptions_cancelled_total = Counter(
    "subscriptions_cancelled_total",
    "Subscriptions that reached the end of a cancelled period",
)

# Points ledger metrics
points_credited_total = Counter(
    "points_credited_total",
    "Points credited to user balances",
    labelnames=["source"],  # invoice
)

points_debited_total = Counter(
    "points_debited_total",
    "Points debited from user balances",
    labelnames=["source"],  # order, deduct
)

insufficient_balance_total = Counter(
    "insufficient_balance_total",
    "Debits rejected because the balance was too low",
    labelnames=["source"],
)

# Renewal job metrics
renewals_processed_total = Counter(
    "renewals_processed_total",
    "Subscriptions renewed by the renewal job",
)

renewals_skipped_total = Counter(
    "renewals_skipped_total",
    "Subscriptions the renewal job left untouched",
    labelnames=["reason"],
)

# Stock order metrics
orders_placed_total = Counter(
    "orders_placed_total",
    "Stock orders recorded",
    labelnames=["site", "re_download"],
)

stock_provider_errors_total = Counter(
    "stock_provider_errors_total",
    "Failed calls to the fulfillment provider",
    labelnames=["operation"],
)
