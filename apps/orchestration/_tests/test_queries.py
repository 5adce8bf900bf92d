"""Tests for control-plane read operations."""

import json
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from apps.orchestration._tests.factories import make_node, make_orchestration, make_task
from apps.orchestration.models import ControlPlaneAction, Phase, SupervisorState, TaskEvent, TeamMember
from apps.orchestration.queries import (
    get_active_policy,
    get_latest_policy_snapshot,
    get_orchestration_detail,
    list_control_actions,
    serialize_action,
)


class ListControlActionsTests(TestCase):
    def setUp(self):
        self.orchestration = make_orchestration()
        now = timezone.now()
        for offset in range(5):
            ControlPlaneAction.objects.create(
                orchestration=self.orchestration,
                action_type="pause",
                payload="{}",
                requested_by="cli",
                idempotency_key=f"k{offset}",
                created_at=now + timedelta(seconds=offset),
            )

    def test_newest_first(self):
        keys = [action.idempotency_key for action in list_control_actions(self.orchestration.pk)]
        assert keys == ["k4", "k3", "k2", "k1", "k0"]

    def test_limit(self):
        assert len(list_control_actions(self.orchestration.pk, limit=2)) == 2

    def test_non_positive_limit_returns_nothing(self):
        assert list_control_actions(self.orchestration.pk, limit=0) == []
        assert list_control_actions(self.orchestration.pk, limit=-1) == []

    def test_other_orchestrations_excluded(self):
        other = make_orchestration(node=self.orchestration.node, feature="other")
        assert list_control_actions(other.pk) == []

    def test_serialize(self):
        action = list_control_actions(self.orchestration.pk, limit=1)[0]
        data = serialize_action(action)
        assert data["idempotency_key"] == "k4"
        assert data["status"] == "pending"
        assert data["result"] is None
        assert data["completed_at"] is None


class PolicyQueryTests(TestCase):
    def setUp(self):
        self.node = make_node()
        self.orchestration = make_orchestration(node=self.node)

    def test_snapshot_missing(self):
        assert get_latest_policy_snapshot(self.orchestration.pk) is None
        assert get_latest_policy_snapshot(987654) is None

    def test_snapshot_present(self):
        self.orchestration.policy_snapshot = '{"review": {}}'
        self.orchestration.policy_snapshot_hash = "sha256-abc"
        self.orchestration.preset_origin = "strict"
        self.orchestration.save()

        assert get_latest_policy_snapshot(self.orchestration.pk) == {
            "policy_snapshot": '{"review": {}}',
            "policy_snapshot_hash": "sha256-abc",
            "preset_origin": "strict",
        }

    def test_active_policy_without_supervisor_state(self):
        assert get_active_policy(self.orchestration.pk) is None
        assert get_active_policy(987654) is None

    def test_active_policy_with_unparseable_state(self):
        SupervisorState.objects.create(
            node=self.node, feature_name=self.orchestration.feature_name, state_json="{broken"
        )
        assert get_active_policy(self.orchestration.pk) is None

    def test_active_policy(self):
        self.orchestration.policy_revision = 3
        self.orchestration.save()
        SupervisorState.objects.create(
            node=self.node,
            feature_name=self.orchestration.feature_name,
            state_json=json.dumps(
                {
                    "model_policy": {"executor": "haiku"},
                    "review_policy": {"enforcement": "task_only"},
                }
            ),
        )

        policy = get_active_policy(self.orchestration.pk)
        assert policy["model_policy"] == {"executor": "haiku"}
        assert policy["review_policy"] == {"enforcement": "task_only"}
        assert policy["policy_revision"] == 3


class OrchestrationDetailTests(TestCase):
    def test_missing(self):
        assert get_orchestration_detail(987654) is None

    def test_detail(self):
        orchestration = make_orchestration(node=make_node(name="builder"))
        Phase.objects.create(orchestration=orchestration, phase_number="1", status="executing")
        make_task(orchestration, task_number=1)
        TeamMember.objects.create(orchestration=orchestration, phase_number="1", agent_name="executor-1")
        for recorded_at, status in (("2026-01-01T10:00:00Z", "pending"), ("2026-01-01T10:30:00Z", "completed")):
            TaskEvent.objects.create(
                orchestration=orchestration,
                phase_number="1",
                task_id="1",
                subject="Task 1",
                status=status,
                recorded_at=recorded_at,
            )

        detail = get_orchestration_detail(orchestration.pk)

        assert detail["node_name"] == "builder"
        assert detail["phases"][0]["status"] == "executing"
        assert len(detail["tasks"]) == 1
        assert detail["tasks"][0]["status"] == "completed"
        assert detail["execution_tasks"][0]["revision"] == 1
        assert detail["team_members"][0]["agent_name"] == "executor-1"
