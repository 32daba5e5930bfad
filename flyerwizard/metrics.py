"""
metrics.py — Prometheus collectors for the migration wizard.

Registered once at import time on the default registry and exposed by main.py at /metrics.
"""
from prometheus_client import Counter, Histogram

# Shopping list items flagged as expired when a wizard session starts
wizard_items_flagged_total = Counter(
    "wizard_items_flagged_total",
    "Total shopping list items flagged for migration wizard",
)

# Candidates returned by the two-pass search, split by whether a same-brand hit was found
wizard_suggestions_returned = Histogram(
    "wizard_suggestions_returned",
    "Number of suggestions returned per expired item",
    ["has_same_brand"],
    buckets=(0, 1, 3, 5, 10, 20, 30, 50),
)

wizard_acceptance_rate_total = Counter(
    "wizard_acceptance_rate_total",
    "Total decisions made in wizard by decision type",
    ["decision"],
)

wizard_selected_store_count = Histogram(
    "wizard_selected_store_count",
    "Number of stores selected in wizard sessions",
    buckets=(0, 1, 2),
)

wizard_latency_ms = Histogram(
    "wizard_latency_ms",
    "Wizard operation latency in milliseconds",
    ["operation"],
    buckets=(10, 50, 100, 250, 500, 1000, 2500, 5000),
)

wizard_sessions_total = Counter(
    "wizard_sessions_total",
    "Total wizard sessions by lifecycle event",
    ["status"],
)

wizard_revalidation_errors_total = Counter(
    "wizard_revalidation_errors_total",
    "Total wizard revalidation failures by error type",
    ["error_type"],
)
