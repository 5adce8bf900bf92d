"""Tests for orchestration views."""

import json
from unittest.mock import MagicMock, patch

from django.test import Client, TestCase

from apps.orchestration._tests.factories import (
    make_design,
    make_node,
    make_orchestration,
    make_project,
    make_task,
)
from apps.orchestration.models import ControlPlaneAction, Orchestration, Phase, SupervisorState
from apps.orchestration.presets import hash_policy, resolve_policy


def _post(client, url, body):
    return client.post(url, data=json.dumps(body), content_type="application/json")


class TestLaunchView(TestCase):
    def setUp(self):
        self.client = Client()
        self.project = make_project()
        self.design = make_design(self.project)
        self.node = make_node()

    def _body(self, **overrides):
        body = {
            "project_id": self.project.pk,
            "design_id": self.design.pk,
            "node_id": self.node.pk,
            "feature": "auth-rework",
            "branch": "tina/auth-rework",
            "policy_preset": "fast",
            "requested_by": "web:alice",
            "idempotency_key": "launch-1",
        }
        body.update(overrides)
        return body

    def test_launch(self):
        response = _post(self.client, "/orchestration/launch/", self._body())

        assert response.status_code == 201
        data = response.json()
        assert Orchestration.objects.filter(pk=data["orchestration_id"]).exists()
        assert ControlPlaneAction.objects.get(pk=data["action_id"]).action_type == "start_orchestration"

    def test_replay_returns_same_ids(self):
        first = _post(self.client, "/orchestration/launch/", self._body()).json()
        second = _post(self.client, "/orchestration/launch/", self._body()).json()
        assert first == second

    def test_missing_fields(self):
        response = _post(self.client, "/orchestration/launch/", {"feature": "x"})
        assert response.status_code == 400
        assert "Missing required field(s)" in response.json()["error"]

    def test_invalid_json(self):
        response = self.client.post(
            "/orchestration/launch/", data="not json", content_type="application/json"
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body"

    def test_project_not_found(self):
        response = _post(self.client, "/orchestration/launch/", self._body(project_id=999999))
        assert response.status_code == 404
        assert response.json()["reason_code"] == "validation_entity_not_found"

    def test_offline_node_is_conflict(self):
        offline = make_node(name="stale", online=False)
        response = _post(self.client, "/orchestration/launch/", self._body(node_id=offline.pk))
        assert response.status_code == 409
        assert response.json()["reason_code"] == "validation_node_offline"

    def test_unknown_preset(self):
        response = _post(self.client, "/orchestration/launch/", self._body(policy_preset="yolo"))
        assert response.status_code == 400
        assert "Unknown preset" in response.json()["error"]

    def test_ticket_ids_not_a_list(self):
        for bad in (5, "12"):
            response = _post(self.client, "/orchestration/launch/", self._body(ticket_ids=bad))
            assert response.status_code == 400
            assert response.json()["error"] == "ticket_ids must be a list of integers"
        assert Orchestration.objects.count() == 0

    def test_get_not_allowed(self):
        assert self.client.get("/orchestration/launch/").status_code == 405


class TestStartView(TestCase):
    def test_start(self):
        client = Client()
        orchestration = make_orchestration()
        policy = resolve_policy("strict")

        response = _post(
            client,
            f"/orchestration/{orchestration.pk}/start/",
            {
                "node_id": orchestration.node_id,
                "policy_snapshot": json.dumps(policy),
                "policy_snapshot_hash": hash_policy(policy),
                "preset_origin": "strict",
                "requested_by": "web:alice",
                "idempotency_key": "start-1",
            },
        )

        assert response.status_code == 201
        orchestration.refresh_from_db()
        assert orchestration.preset_origin == "strict"
        assert ControlPlaneAction.objects.get(pk=response.json()["action_id"]).orchestration == orchestration

    def test_unknown_orchestration(self):
        node = make_node()
        response = _post(
            Client(),
            "/orchestration/999999/start/",
            {
                "node_id": node.pk,
                "policy_snapshot": "{}",
                "policy_snapshot_hash": "sha256-x",
                "requested_by": "cli",
                "idempotency_key": "k",
            },
        )
        assert response.status_code == 404


class TestControlActionsView(TestCase):
    def setUp(self):
        self.client = Client()
        self.orchestration = make_orchestration()
        self.url = f"/orchestration/{self.orchestration.pk}/actions/"

    def _enqueue(self, **overrides):
        body = {
            "node_id": self.orchestration.node_id,
            "action_type": "pause",
            "payload": {"feature": "auth-rework", "phase": "1"},
            "requested_by": "web:alice",
            "idempotency_key": "pause-1",
        }
        body.update(overrides)
        return _post(self.client, self.url, body)

    def test_enqueue_with_object_payload(self):
        response = self._enqueue()
        assert response.status_code == 201
        action = ControlPlaneAction.objects.get(pk=response.json()["action_id"])
        assert json.loads(action.payload) == {"feature": "auth-rework", "phase": "1"}

    def test_enqueue_with_text_payload(self):
        response = self._enqueue(payload='{"feature": "auth-rework"}', action_type="resume")
        assert response.status_code == 201
        assert ControlPlaneAction.objects.get().payload == '{"feature": "auth-rework"}'

    def test_validation_error(self):
        response = self._enqueue(action_type="start_orchestration")
        assert response.status_code == 400
        data = response.json()
        assert "Invalid actionType" in data["error"]
        assert data["reason_code"] == "validation_unknown_action"

    def test_revision_conflict(self):
        response = self._enqueue(
            action_type="orchestration_set_policy",
            payload={"feature": "auth-rework", "targetRevision": 4},
        )
        assert response.status_code == 409
        assert "Policy revision conflict" in response.json()["error"]

    def test_task_not_found(self):
        response = self._enqueue(
            action_type="task_edit",
            payload={"feature": "f", "phaseNumber": "1", "taskNumber": 2, "revision": 1, "subject": "x"},
        )
        assert response.status_code == 404

    def test_task_not_pending(self):
        make_task(self.orchestration, status="completed")
        response = self._enqueue(
            action_type="task_set_model",
            payload={"feature": "f", "phaseNumber": "1", "taskNumber": 1, "revision": 1, "model": "opus"},
        )
        assert response.status_code == 409
        assert response.json()["reason_code"] == "validation_invalid_state"

    def test_list(self):
        self._enqueue(idempotency_key="a")
        self._enqueue(idempotency_key="b", payload={"feature": "auth-rework", "phase": "2"})

        response = self.client.get(self.url)
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert [action["idempotency_key"] for action in data["actions"]] == ["b", "a"]

        assert self.client.get(self.url, {"limit": "1"}).json()["count"] == 1

    def test_list_bad_limit(self):
        assert self.client.get(self.url, {"limit": "many"}).status_code == 400

    def test_list_non_positive_limit(self):
        for limit in ("-1", "0"):
            response = self.client.get(self.url, {"limit": limit})
            assert response.status_code == 400
            assert response.json()["error"] == "limit must be a positive integer"


class TestOrchestrationReadViews(TestCase):
    def setUp(self):
        self.client = Client()
        self.orchestration = make_orchestration()

    def test_detail(self):
        response = self.client.get(f"/orchestration/{self.orchestration.pk}/")
        assert response.status_code == 200
        assert response.json()["feature_name"] == "auth-rework"

    def test_detail_not_found(self):
        assert self.client.get("/orchestration/999999/").status_code == 404

    def test_policy_snapshot_null(self):
        response = self.client.get(f"/orchestration/{self.orchestration.pk}/policy/snapshot/")
        assert response.status_code == 200
        assert response.json() == {"policy": None}

    def test_active_policy(self):
        SupervisorState.objects.create(
            node=self.orchestration.node,
            feature_name="auth-rework",
            state_json=json.dumps({"model_policy": {"planner": "opus"}}),
        )
        response = self.client.get(f"/orchestration/{self.orchestration.pk}/policy/active/")
        assert response.json()["policy"]["model_policy"] == {"planner": "opus"}


class TestDeleteOrchestrationView(TestCase):
    def setUp(self):
        self.client = Client()
        self.orchestration = make_orchestration()
        Phase.objects.create(orchestration=self.orchestration, phase_number="1")

    def test_steps_until_done(self):
        url = f"/orchestration/{self.orchestration.pk}/delete/"

        first = self.client.post(url).json()
        assert first == {"done": False, "pending_table": "phases", "deleted_rows": 1}

        second = self.client.post(url).json()
        assert second == {
            "done": True,
            "deleted": True,
            "deleted_orchestration_id": self.orchestration.pk,
        }

        assert self.client.post(url).json()["deleted"] is False

    def test_async_queues_task(self):
        with patch("apps.orchestration.views.delete_orchestration_task") as task:
            task.delay.return_value = MagicMock(id="celery-task-1")
            response = self.client.post(f"/orchestration/{self.orchestration.pk}/delete/async/")

        assert response.status_code == 202
        assert response.json()["task_id"] == "celery-task-1"
        task.delay.assert_called_once_with(self.orchestration.pk)
