# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for the procurement core.

Counters and histograms for the collection cache, access verification and
repair, ledger postings and record store latency.
"""

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY
)


# ==== CACHE METRICS ==== #

cache_hits_total = Counter(
    "pms_cache_hits_total",
    "Total collection cache hits",
    ["collection"]
)

cache_misses_total = Counter(
    "pms_cache_misses_total",
    "Total collection cache misses",
    ["collection"]
)

cache_invalidations_total = Counter(
    "pms_cache_invalidations_total",
    "Total collection cache invalidations",
    ["scope"]  # scope: collection, business
)


# ==== ACCESS METRICS ==== #

access_checks_total = Counter(
    "pms_access_checks_total",
    "Access verifications by decision path",
    ["path"]  # owner, membership, link, profile_role, denied, missing_business, error
)

access_repairs_total = Counter(
    "pms_access_repairs_total",
    "Relation records materialized by the resolver",
    ["record"]  # membership, link, user_business_id
)

access_repair_failures_total = Counter(
    "pms_access_repair_failures_total",
    "Repair writes that failed and were skipped",
    ["record"]
)


# ==== LEDGER METRICS ==== #

ledger_postings_total = Counter(
    "pms_ledger_postings_total",
    "Budget payment postings completed",
    ["strategy"]
)

ledger_failures_total = Counter(
    "pms_ledger_failures_total",
    "Budget payment postings aborted by step",
    ["step"]
)

ledger_posted_amount_total = Counter(
    "pms_ledger_posted_amount_total",
    "Sum of amounts posted against budgets"
)

summary_recomputes_total = Counter(
    "pms_summary_recomputes_total",
    "Annual budget summary recomputations"
)


# ==== STORE METRICS ==== #

store_operation_seconds = Histogram(
    "pms_store_operation_seconds",
    "Record store operation latency in seconds",
    ["backend", "operation"]
)


def render_metrics() -> bytes:
    """Render the default registry in Prometheus text format."""
    return generate_latest(REGISTRY)
