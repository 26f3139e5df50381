"""Prometheus metrics for monitoring analyses, plan outcomes, edits, and explanation latency"""

from prometheus_client import Counter, Histogram

# Analysis metrics
snapshot_counter = Counter(
    "allocation_snapshot_total",
    "Financial snapshots computed",
)

review_required_counter = Counter(
    "allocation_review_required_total",
    "Transactions flagged for user review",
)

# Plan metrics
plan_outcome_counter = Counter(
    "allocation_plan_total",
    "Allocation plan requests by outcome",
    ["outcome"],  # generated | negative_disposable_income | low_confidence
)

edit_counter = Counter(
    "allocation_edit_total",
    "Bucket edits by status",
    ["status"],  # applied | clamped | rejected
)

# Explanation service metrics
explanation_latency_histogram = Histogram(
    "explanation_latency_seconds",
    "Explanation service response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

explanation_failure_counter = Counter(
    "explanation_failures_total",
    "Failed explanation requests",
)

# Bank API metrics
bank_fetch_failures_counter = Counter(
    "bank_fetch_failures_total",
    "Failed bank API calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_snapshot(transactions_needing_review: int) -> None:
    snapshot_counter.inc()
    if transactions_needing_review:
        review_required_counter.inc(transactions_needing_review)


def record_plan_outcome(outcomes: list[str]) -> None:
    """One increment per outcome; a refused plan can fail more than one condition"""
    for outcome in outcomes:
        plan_outcome_counter.labels(outcome=outcome).inc()


def record_edit(status: str) -> None:
    edit_counter.labels(status=status).inc()
