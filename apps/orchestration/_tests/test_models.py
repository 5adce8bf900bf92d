"""Tests for orchestration model constraints and helpers."""

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from django.test import TestCase

from apps.orchestration._tests.factories import make_orchestration, make_project, make_task
from apps.orchestration.models import ActionType, ControlPlaneAction, Orchestration, Phase


class OrchestrationModelTests(TestCase):
    def test_defaults(self):
        orchestration = make_orchestration()
        assert orchestration.policy_revision == 0
        assert orchestration.live_policy == {}
        assert orchestration.snapshot_dict() is None

    def test_snapshot_dict(self):
        orchestration = make_orchestration(policy_snapshot='{"model": {"planner": "opus"}}')
        assert orchestration.snapshot_dict() == {"model": {"planner": "opus"}}

        orchestration.policy_snapshot = "{broken"
        assert orchestration.snapshot_dict() is None
        orchestration.policy_snapshot = "[1]"
        assert orchestration.snapshot_dict() is None

    def test_launch_key_unique_per_project(self):
        project = make_project()
        first = make_orchestration(project=project, launch_idempotency_key="k")
        make_orchestration(node=first.node, feature="other", launch_idempotency_key="k")

        with self.assertRaises(IntegrityError), transaction.atomic():
            make_orchestration(node=first.node, project=project, feature="dup", launch_idempotency_key="k")

    def test_blank_launch_keys_do_not_collide(self):
        project = make_project()
        first = make_orchestration(project=project)
        make_orchestration(node=first.node, project=project, feature="second")
        assert Orchestration.objects.filter(project=project).count() == 2

    def test_children_protect_orchestration(self):
        orchestration = make_orchestration()
        Phase.objects.create(orchestration=orchestration, phase_number="1")
        with self.assertRaises(ProtectedError):
            orchestration.delete()


class ControlPlaneActionModelTests(TestCase):
    def test_idempotency_key_unique_per_orchestration(self):
        orchestration = make_orchestration()
        fields = {"action_type": ActionType.PAUSE, "payload": "{}", "requested_by": "cli"}
        ControlPlaneAction.objects.create(orchestration=orchestration, idempotency_key="k", **fields)

        other = make_orchestration(node=orchestration.node, feature="other")
        ControlPlaneAction.objects.create(orchestration=other, idempotency_key="k", **fields)

        with self.assertRaises(IntegrityError), transaction.atomic():
            ControlPlaneAction.objects.create(orchestration=orchestration, idempotency_key="k", **fields)

    def test_default_status(self):
        action = ControlPlaneAction.objects.create(
            orchestration=make_orchestration(),
            action_type=ActionType.RETRY,
            payload="{}",
            requested_by="cli",
            idempotency_key="k",
        )
        assert action.status == "pending"
        assert action.queue_action is None


class ExecutionTaskModelTests(TestCase):
    def test_defaults(self):
        task = make_task(make_orchestration())
        assert task.revision == 1
        assert task.status == "pending"
        assert task.depends_on == []

    def test_task_number_unique_per_phase(self):
        orchestration = make_orchestration()
        make_task(orchestration, phase_number="1", task_number=1)
        make_task(orchestration, phase_number="2", task_number=1)
        with self.assertRaises(IntegrityError), transaction.atomic():
            make_task(orchestration, phase_number="1", task_number=1)
