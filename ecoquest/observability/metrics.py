"""
Prometheus metrics definitions for ecoquest.

Organized by category:
- Ledger metrics: points credited, badges unlocked, rejected mutations
- Session metrics: hydrations, active sessions
- Persistence metrics: write-through failures, retries, storage uploads

Metrics are registered on the default prometheus_client registry; the host
application decides how to expose them.
"""

import logging
from prometheus_client import Counter, Gauge

logger = logging.getLogger(__name__)

# =============================================================================
# Ledger Metrics
# =============================================================================

points_awarded_total = Counter(
    "ecoquest_points_awarded_total",
    "Total points credited to ledgers",
    ["source"],  # source: task/episode/challenge/manual
)

badges_unlocked_total = Counter(
    "ecoquest_badges_unlocked_total",
    "Total badges unlocked",
    ["tier"],  # tier: bronze/silver/gold
)

ledger_mutations_total = Counter(
    "ecoquest_ledger_mutations_total",
    "Ledger mutation attempts by outcome",
    ["operation", "status"],  # status: applied/invalid_amount/duplicate_badge/duplicate_event
)

# =============================================================================
# Session Metrics
# =============================================================================

hydrations_total = Counter(
    "ecoquest_hydrations_total",
    "Ledger hydrations by outcome",
    ["outcome"],  # outcome: snapshot/new_user/failed/cancelled
)

active_sessions = Gauge(
    "ecoquest_active_sessions",
    "Number of hydrated ledger sessions",
)

# =============================================================================
# Persistence Metrics
# =============================================================================

persistence_failures_total = Counter(
    "ecoquest_persistence_failures_total",
    "Write-through failures that left a session diverged",
    ["operation"],
)

persistence_retries_total = Counter(
    "ecoquest_persistence_retries_total",
    "Retry attempts against the persistence or storage backends",
    ["target"],  # target: ledger/storage
)

avatar_uploads_total = Counter(
    "ecoquest_avatar_uploads_total",
    "Avatar uploads by outcome",
    ["status"],  # status: success/rejected/failed
)


def record_mutation(operation: str, status: str) -> None:
    """Count one ledger mutation attempt"""
    ledger_mutations_total.labels(operation=operation, status=status).inc()


def record_points(source: str, amount: int) -> None:
    """Count credited points (negative corrections are not counted)"""
    if amount > 0:
        points_awarded_total.labels(source=source).inc(amount)


def record_badge(tier: str) -> None:
    badges_unlocked_total.labels(tier=tier).inc()


def record_hydration(outcome: str) -> None:
    hydrations_total.labels(outcome=outcome).inc()


def record_persistence_failure(operation: str) -> None:
    persistence_failures_total.labels(operation=operation).inc()


def record_retry(target: str) -> None:
    persistence_retries_total.labels(target=target).inc()
