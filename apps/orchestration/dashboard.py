"""
Control-plane health aggregates shown on the admin dashboard.

All functions take an optional `since` datetime and only count actions
created at or after it.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Any

from django.db.models import Count, Q

from apps.orchestration.models import ActionStatus, ActionType, ControlPlaneAction
from apps.orchestration.reason_codes import extract_reason_code


def _actions(since: datetime | None):
    queryset = ControlPlaneAction.objects.all()
    if since is not None:
        queryset = queryset.filter(created_at__gte=since)
    return queryset


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def launch_success_rate(since: datetime | None = None) -> dict[str, Any]:
    """Share of start_orchestration actions that completed."""
    counts = _actions(since).filter(action_type=ActionType.START_ORCHESTRATION).aggregate(
        total=Count("id"),
        succeeded=Count("id", filter=Q(status=ActionStatus.COMPLETED)),
        failed=Count("id", filter=Q(status=ActionStatus.FAILED)),
    )
    total = counts["total"]
    if total == 0:
        return {"total": 0, "succeeded": 0, "failed": 0, "rate": None}
    return {
        "total": total,
        "succeeded": counts["succeeded"],
        "failed": counts["failed"],
        "rate": counts["succeeded"] / total,
    }


def _percentiles(latencies: list[float]) -> tuple[int, int]:
    latencies = sorted(latencies)
    count = len(latencies)
    mid = count // 2
    if count % 2 == 0:
        median = (latencies[mid - 1] + latencies[mid]) / 2
    else:
        median = latencies[mid]
    p95_index = min(math.ceil(count * 0.95) - 1, count - 1)
    return _round_half_up(median), _round_half_up(latencies[p95_index])


def action_latency(since: datetime | None = None) -> dict[str, dict[str, int]]:
    """Median and p95 milliseconds from creation to completion, per action type."""
    finished = _actions(since).filter(completed_at__isnull=False).values_list(
        "action_type", "created_at", "completed_at"
    )

    by_type: dict[str, list[float]] = defaultdict(list)
    for action_type, created_at, completed_at in finished:
        by_type[action_type].append((completed_at - created_at).total_seconds() * 1000)

    results = {}
    for action_type, latencies in by_type.items():
        median_ms, p95_ms = _percentiles(latencies)
        results[action_type] = {
            "count": len(latencies),
            "median_ms": median_ms,
            "p95_ms": p95_ms,
        }
    return results


def failure_distribution(since: datetime | None = None) -> dict[str, Any]:
    """Failed actions counted by action type and reason code."""
    failed = _actions(since).filter(status=ActionStatus.FAILED).values_list("action_type", "result")

    distribution: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    total = 0
    for action_type, result in failed:
        total += 1
        if result:
            reason = extract_reason_code(result) or "unclassified"
        else:
            reason = "unknown"
        distribution[action_type][reason] += 1

    return {
        "total_failed": total,
        "by_action_type": {key: dict(value) for key, value in distribution.items()},
    }


def dashboard_context(since: datetime | None = None) -> dict[str, Any]:
    """Everything the admin dashboard renders."""
    return {
        "launch_success": launch_success_rate(since),
        "action_latency": action_latency(since),
        "failure_distribution": failure_distribution(since),
    }
