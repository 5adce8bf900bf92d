import json
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.contrib import admin
from django.utils import timezone

from apps.orchestration._tests.factories import make_node, make_orchestration
from apps.orchestration.models import ControlPlaneAction, Orchestration, Phase


@pytest.mark.django_db
class TestConsoleAdminSite:
    def test_custom_site_is_active(self):
        """The default admin.site should be our custom ConsoleAdminSite."""
        from config.admin import ConsoleAdminSite

        assert isinstance(admin.site, ConsoleAdminSite)

    def test_site_header(self):
        assert admin.site.site_header == "Orchestration Console"

    def test_index_title(self):
        assert admin.site.index_title == "Dashboard"

    def test_admin_index_loads(self, admin_client):
        response = admin_client.get("/admin/")
        assert response.status_code == 200


@pytest.fixture
def dashboard_data(db):
    """Create sample control-plane activity for dashboard tests."""
    orchestration = make_orchestration(node=make_node(name="builder"))
    make_node(name="stale", online=False)
    now = timezone.now()

    def action(key, action_type, status, latency_ms=None, result="", age=timedelta(0)):
        created_at = now - age
        ControlPlaneAction.objects.create(
            orchestration=orchestration,
            action_type=action_type,
            payload="{}",
            requested_by="web:alice",
            idempotency_key=key,
            status=status,
            result=result,
            created_at=created_at,
            completed_at=created_at + timedelta(milliseconds=latency_ms) if latency_ms else None,
        )

    action("l1", "start_orchestration", "completed", latency_ms=500)
    action("l2", "start_orchestration", "failed", result=json.dumps({"error_code": "cli_spawn_failed"}))
    action("p1", "pause", "completed", latency_ms=100)
    # Outside the 7 day window
    action("old", "start_orchestration", "completed", latency_ms=100, age=timedelta(days=30))
    return orchestration


@pytest.mark.django_db
class TestDashboardContext:
    def test_dashboard_contains_launch_success(self, admin_client, dashboard_data):
        response = admin_client.get("/admin/")
        assert response.status_code == 200
        launches = response.context["launch_success"]
        assert launches["total"] == 2
        assert launches["succeeded"] == 1

    def test_dashboard_contains_latency(self, admin_client, dashboard_data):
        response = admin_client.get("/admin/")
        latency = response.context["action_latency"]
        assert latency["pause"]["median_ms"] == 100
        assert latency["start_orchestration"]["count"] == 1

    def test_dashboard_contains_failures(self, admin_client, dashboard_data):
        response = admin_client.get("/admin/")
        failures = response.context["failure_distribution"]
        assert failures["by_action_type"] == {
            "start_orchestration": {"dispatch_cli_spawn_failed": 1}
        }

    def test_dashboard_contains_nodes_and_queue(self, admin_client, dashboard_data):
        response = admin_client.get("/admin/")
        nodes = {node["name"]: node["online"] for node in response.context["nodes"]}
        assert nodes == {"builder": True, "stale": False}
        assert response.context["queue"] == {"pending": 0, "claimed": 0}
        assert len(response.context["recent_actions"]) == 4

    def test_dashboard_renders_panels(self, admin_client, dashboard_data):
        content = admin_client.get("/admin/").content.decode()
        assert "Launches (7 days)" in content
        assert "Action latency" in content
        assert "dispatch_cli_spawn_failed" in content


@pytest.mark.django_db
class TestOrchestrationAdmin:
    def test_changelist_and_change_view_load(self, admin_client, orchestration):
        assert admin_client.get("/admin/orchestration/orchestration/").status_code == 200
        response = admin_client.get(f"/admin/orchestration/orchestration/{orchestration.pk}/change/")
        assert response.status_code == 200

    def test_plain_delete_is_disabled(self, admin_client, orchestration):
        response = admin_client.get(f"/admin/orchestration/orchestration/{orchestration.pk}/delete/")
        assert response.status_code == 403

    def test_run_delete_step_button(self, admin_client, orchestration):
        Phase.objects.create(orchestration=orchestration, phase_number="1")

        response = admin_client.post(
            f"/admin/orchestration/orchestration/{orchestration.pk}/actions/run_delete_step/",
        )
        assert response.status_code == 302
        assert not Phase.objects.filter(orchestration=orchestration).exists()
        assert Orchestration.objects.filter(pk=orchestration.pk).exists()

    def test_delete_staged_button(self, admin_client, orchestration):
        Phase.objects.create(orchestration=orchestration, phase_number="1")

        response = admin_client.post(
            f"/admin/orchestration/orchestration/{orchestration.pk}/actions/delete_staged/",
        )
        assert response.status_code == 302
        assert not Orchestration.objects.filter(pk=orchestration.pk).exists()

    def test_bulk_action_queues_background_deletion(self, admin_client, orchestration):
        with patch("apps.orchestration.admin.delete_orchestration_task") as task:
            response = admin_client.post(
                "/admin/orchestration/orchestration/",
                {"action": "delete_staged_selected", "_selected_action": [orchestration.pk]},
            )
        assert response.status_code == 302
        task.delay.assert_called_once_with(orchestration.pk)


@pytest.mark.django_db
class TestControlPlaneActionAdmin:
    def test_reason_column(self, admin_client, orchestration):
        ControlPlaneAction.objects.create(
            orchestration=orchestration,
            action_type="retry",
            payload="{}",
            requested_by="cli",
            idempotency_key="k",
            status="failed",
            result=json.dumps({"success": False, "error_code": "unknown_action_type"}),
        )
        response = admin_client.get("/admin/orchestration/controlplaneaction/")
        assert response.status_code == 200
        assert "dispatch_unknown_type" in response.content.decode()
