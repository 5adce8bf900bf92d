"""Tests for orchestration management commands."""

import json
from io import StringIO
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from apps.orchestration._tests.factories import make_node, make_orchestration
from apps.orchestration.models import ControlPlaneAction, Orchestration, Phase


class DeleteOrchestrationCommandTests(TestCase):
    def setUp(self):
        self.orchestration = make_orchestration()
        Phase.objects.create(orchestration=self.orchestration, phase_number="1")
        Phase.objects.create(orchestration=self.orchestration, phase_number="2")

    def test_deletes_until_done(self):
        out = StringIO()
        call_command("delete_orchestration", self.orchestration.pk, stdout=out)

        assert "deleted in 2 step(s)" in out.getvalue()
        assert not Orchestration.objects.filter(pk=self.orchestration.pk).exists()

    def test_step_limit_reports_remaining_table(self):
        out = StringIO()
        call_command(
            "delete_orchestration",
            self.orchestration.pk,
            "--max-steps",
            "1",
            "--batch-size",
            "1",
            stdout=out,
        )

        assert "Stopped after 1 step(s)" in out.getvalue()
        assert "phases" in out.getvalue()
        assert Orchestration.objects.filter(pk=self.orchestration.pk).exists()

    def test_json_output(self):
        out = StringIO()
        call_command("delete_orchestration", self.orchestration.pk, "--json", stdout=out)
        data = json.loads(out.getvalue())
        assert data["done"] is True
        assert data["deleted"] is True
        assert data["steps"] == 2

    def test_not_found(self):
        out = StringIO()
        call_command("delete_orchestration", 999999, stdout=out)
        assert "not found" in out.getvalue()

    def test_invalid_max_steps(self):
        with self.assertRaises(CommandError):
            call_command("delete_orchestration", self.orchestration.pk, "--max-steps", "0")

    def test_async(self):
        target = "apps.orchestration.management.commands.delete_orchestration.delete_orchestration_task"
        with patch(target) as task:
            task.delay.return_value = MagicMock(id="celery-1")
            out = StringIO()
            call_command("delete_orchestration", self.orchestration.pk, "--async", stdout=out)

        task.delay.assert_called_once_with(self.orchestration.pk)
        assert "celery-1" in out.getvalue()
        assert Orchestration.objects.filter(pk=self.orchestration.pk).exists()


class EnqueueActionCommandTests(TestCase):
    def setUp(self):
        self.orchestration = make_orchestration()

    def test_enqueue_on_orchestration_node(self):
        out = StringIO()
        call_command(
            "enqueue_action",
            self.orchestration.pk,
            "pause",
            "--payload",
            '{"feature": "auth-rework", "phase": "1"}',
            "--idempotency-key",
            "cli-1",
            stdout=out,
        )

        action = ControlPlaneAction.objects.get(idempotency_key="cli-1")
        assert f"Enqueued control action {action.pk}" in out.getvalue()
        assert action.requested_by == "cli"
        assert action.queue_action.node_id == self.orchestration.node_id

    def test_explicit_node(self):
        other = make_node(name="other")
        call_command(
            "enqueue_action",
            self.orchestration.pk,
            "resume",
            "--payload",
            '{"feature": "auth-rework"}',
            "--node",
            str(other.pk),
            "--requested-by",
            "ops",
            stdout=StringIO(),
        )
        action = ControlPlaneAction.objects.get()
        assert action.queue_action.node_id == other.pk
        assert action.requested_by == "ops"

    def test_rejection_becomes_command_error(self):
        with self.assertRaisesMessage(CommandError, "[validation_missing_field]"):
            call_command("enqueue_action", self.orchestration.pk, "pause", stdout=StringIO())
        assert ControlPlaneAction.objects.count() == 0

    def test_unknown_orchestration(self):
        with self.assertRaisesMessage(CommandError, "Orchestration not found"):
            call_command("enqueue_action", 999999, "pause", stdout=StringIO())
