"""Tests for the dashboard aggregates."""

import json
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from apps.orchestration._tests.factories import make_orchestration
from apps.orchestration.dashboard import (
    action_latency,
    dashboard_context,
    failure_distribution,
    launch_success_rate,
)
from apps.orchestration.models import ControlPlaneAction


class DashboardTests(TestCase):
    def setUp(self):
        self.orchestration = make_orchestration()
        self.now = timezone.now()
        self.counter = 0

    def action(self, action_type="pause", status="pending", latency_ms=None, result="", age=None):
        self.counter += 1
        created_at = self.now - (age or timedelta(0))
        return ControlPlaneAction.objects.create(
            orchestration=self.orchestration,
            action_type=action_type,
            payload="{}",
            requested_by="cli",
            idempotency_key=f"k{self.counter}",
            status=status,
            result=result,
            created_at=created_at,
            completed_at=(
                created_at + timedelta(milliseconds=latency_ms) if latency_ms is not None else None
            ),
        )

    def test_launch_success_rate_without_launches(self):
        assert launch_success_rate() == {"total": 0, "succeeded": 0, "failed": 0, "rate": None}

    def test_launch_success_rate(self):
        self.action("start_orchestration", status="completed")
        self.action("start_orchestration", status="completed")
        self.action("start_orchestration", status="failed")
        self.action("start_orchestration")
        self.action("pause", status="completed")

        stats = launch_success_rate()
        assert stats["total"] == 4
        assert stats["succeeded"] == 2
        assert stats["failed"] == 1
        assert stats["rate"] == 0.5

    def test_since_filters_old_actions(self):
        self.action("start_orchestration", status="completed", age=timedelta(days=30))
        assert launch_success_rate(since=self.now - timedelta(days=7))["total"] == 0

    def test_latency_percentiles(self):
        for latency in (100, 200, 300, 400):
            self.action("pause", status="completed", latency_ms=latency)
        self.action("pause")

        stats = action_latency()["pause"]
        assert stats["count"] == 4
        assert stats["median_ms"] == 250
        assert stats["p95_ms"] == 400

    def test_latency_median_rounds_half_up(self):
        for latency in (125, 250):
            self.action("retry", status="completed", latency_ms=latency)
        assert action_latency()["retry"]["median_ms"] == 188

    def test_failure_distribution(self):
        self.action(
            "pause",
            status="failed",
            result=json.dumps({"success": False, "error_code": "cli_exit_non_zero"}),
        )
        self.action(
            "pause",
            status="failed",
            result=json.dumps({"success": False, "error_code": "cli_exit_non_zero"}),
        )
        self.action("task_edit", status="failed", result="not json")
        self.action("task_edit", status="failed", result=json.dumps({"success": True}))
        self.action("retry", status="failed")
        self.action("retry", status="completed")

        distribution = failure_distribution()
        assert distribution["total_failed"] == 5
        assert distribution["by_action_type"] == {
            "pause": {"dispatch_cli_exit_nonzero": 2},
            "task_edit": {"dispatch_payload_invalid": 1, "unclassified": 1},
            "retry": {"unknown": 1},
        }

    def test_context(self):
        context = dashboard_context()
        assert set(context) == {"launch_success", "action_latency", "failure_distribution"}
