# -*- coding: utf-8 -*-
"""
Prometheus Metrics - rolegraph authorization engine

Prometheus metrics for the engine with graceful fallback when
prometheus_client is not installed.

Metrics:
    1.  rolegraph_permission_checks_total (Counter)
    2.  rolegraph_resolution_duration_seconds (Histogram)
    3.  rolegraph_cache_hits_total (Counter)
    4.  rolegraph_cache_misses_total (Counter)
    5.  rolegraph_cache_invalidations_total (Counter)
    6.  rolegraph_resolution_failures_total (Counter)
    7.  rolegraph_access_request_transitions_total (Counter)
    8.  rolegraph_roles_total (Gauge)
    9.  rolegraph_assignments_total (Gauge)
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Graceful prometheus_client import
# ---------------------------------------------------------------------------

try:
    from prometheus_client import Counter, Gauge, Histogram
    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False
    logger.info("prometheus_client not installed; rolegraph metrics disabled")


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

if PROMETHEUS_AVAILABLE:
    # 1. Permission checks by outcome
    rolegraph_permission_checks_total = Counter(
        "rolegraph_permission_checks_total",
        "Total permission checks rendered",
        labelnames=["action", "result"],
    )

    # 2. Matrix resolution duration
    rolegraph_resolution_duration_seconds = Histogram(
        "rolegraph_resolution_duration_seconds",
        "Permission matrix resolution duration in seconds",
        buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
    )

    # 3. Cache hits
    rolegraph_cache_hits_total = Counter(
        "rolegraph_cache_hits_total",
        "Total permission matrix cache hits",
    )

    # 4. Cache misses
    rolegraph_cache_misses_total = Counter(
        "rolegraph_cache_misses_total",
        "Total permission matrix cache misses",
    )

    # 5. Cache invalidations by scope
    rolegraph_cache_invalidations_total = Counter(
        "rolegraph_cache_invalidations_total",
        "Total permission matrix cache invalidations",
        labelnames=["scope"],
    )

    # 6. Resolution failures
    rolegraph_resolution_failures_total = Counter(
        "rolegraph_resolution_failures_total",
        "Total resolution failures degraded to an empty matrix",
    )

    # 7. Access request transitions
    rolegraph_access_request_transitions_total = Counter(
        "rolegraph_access_request_transitions_total",
        "Total access request state transitions",
        labelnames=["status"],
    )

    # 8. Roles gauge
    rolegraph_roles_total = Gauge(
        "rolegraph_roles_total",
        "Current number of stored roles",
    )

    # 9. Assignments gauge
    rolegraph_assignments_total = Gauge(
        "rolegraph_assignments_total",
        "Current number of stored user role assignments",
    )

else:
    # No-op placeholders
    rolegraph_permission_checks_total = None  # type: ignore[assignment]
    rolegraph_resolution_duration_seconds = None  # type: ignore[assignment]
    rolegraph_cache_hits_total = None  # type: ignore[assignment]
    rolegraph_cache_misses_total = None  # type: ignore[assignment]
    rolegraph_cache_invalidations_total = None  # type: ignore[assignment]
    rolegraph_resolution_failures_total = None  # type: ignore[assignment]
    rolegraph_access_request_transitions_total = None  # type: ignore[assignment]
    rolegraph_roles_total = None  # type: ignore[assignment]
    rolegraph_assignments_total = None  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Helper functions (safe to call even without prometheus_client)
# ---------------------------------------------------------------------------


def record_permission_check(action: str, allowed: bool) -> None:
    """Record a permission check outcome.

    Args:
        action: Action that was checked (read, update, etc.).
        allowed: Whether access was granted.
    """
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_permission_checks_total.labels(
        action=action, result="allow" if allowed else "deny",
    ).inc()


def record_resolution(duration_seconds: float) -> None:
    """Record how long a permission matrix took to resolve."""
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_resolution_duration_seconds.observe(duration_seconds)


def record_resolution_failure() -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_resolution_failures_total.inc()


def record_cache_hit() -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_cache_hits_total.inc()


def record_cache_miss() -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_cache_misses_total.inc()


def record_cache_invalidation(scope: str) -> None:
    """Record a cache invalidation.

    Args:
        scope: "user" for a single entry, "all" for a full flush.
    """
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_cache_invalidations_total.labels(scope=scope).inc()


def record_access_request_transition(status: str) -> None:
    """Record an access request entering ``status``."""
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_access_request_transitions_total.labels(status=status).inc()


def update_roles_count(count: int) -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_roles_total.set(count)


def update_assignments_count(count: int) -> None:
    if not PROMETHEUS_AVAILABLE:
        return
    rolegraph_assignments_total.set(count)


__all__ = [
    "PROMETHEUS_AVAILABLE",
    "record_permission_check",
    "record_resolution",
    "record_resolution_failure",
    "record_cache_hit",
    "record_cache_miss",
    "record_cache_invalidation",
    "record_access_request_transition",
    "update_roles_count",
    "update_assignments_count",
]
