# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Prometheus metrics recorded by the orchestrator.

Metrics live in the default in-process registry; exposing them (HTTP
endpoint, push gateway) is up to the embedding service.
"""

from typing import Iterable

from prometheus_client import Counter, Histogram

# --- Metric definitions ---

VALIDATIONS = Counter(
    "flowmend_validations_total",
    "Total workflow validations",
    ["result"],
)

ISSUES = Counter(
    "flowmend_issues_total",
    "Validation issues reported",
    ["severity", "category"],
)

CORRECTIONS = Counter(
    "flowmend_corrections_total",
    "Corrections applied by auto-repair",
    ["phase"],
)

VALIDATION_DURATION = Histogram(
    "flowmend_validation_duration_seconds",
    "Duration of validate-and-repair runs in seconds",
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)


def record_validation(report, duration: float) -> None:
    """Record the outcome of a final validation pass."""
    VALIDATIONS.labels(result="valid" if report.is_valid else "invalid").inc()
    for issue in report.issues:
        ISSUES.labels(severity=issue.severity.value, category=issue.category.value).inc()
    VALIDATION_DURATION.observe(duration)


def record_corrections(actions: Iterable) -> None:
    for action in actions:
        CORRECTIONS.labels(phase=action.phase).inc()
