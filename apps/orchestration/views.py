"""
Views for the orchestration app.

JSON endpoints for launching orchestrations, submitting control actions,
reading policy state and driving staged deletion.

Control-plane errors map to HTTP status codes:
    InvalidActionError      400
    RevisionConflictError   409
    NodeOfflineError        409
    ReferenceNotFoundError  404
"""

import json
import logging
from typing import Any

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.orchestration import control_plane, queries
from apps.orchestration.deletion import delete_orchestration
from apps.orchestration.errors import (
    ControlPlaneError,
    NodeOfflineError,
    ReferenceNotFoundError,
    RevisionConflictError,
)
from apps.orchestration.tasks import delete_orchestration_task

logger = logging.getLogger(__name__)


class BadRequest(Exception):
    """Malformed request body."""


class JSONResponseMixin:
    """Mixin for JSON responses."""

    def json_response(self, data: Any, status: int = 200) -> JsonResponse:
        return JsonResponse(data, status=status, safe=isinstance(data, dict))

    def error_response(self, message: str, status: int = 400, **extra) -> JsonResponse:
        return JsonResponse({"error": message, **extra}, status=status)

    def control_plane_error_response(self, exc: ControlPlaneError) -> JsonResponse:
        if isinstance(exc, (NodeOfflineError, RevisionConflictError)):
            status = 409
        elif isinstance(exc, ReferenceNotFoundError):
            status = 404
        else:
            status = 400
        return self.error_response(exc.message, status=status, reason_code=exc.reason_code)

    def parse_body(self, request) -> dict[str, Any]:
        try:
            body = json.loads(request.body) if request.body else {}
        except json.JSONDecodeError:
            raise BadRequest("Invalid JSON body") from None
        if not isinstance(body, dict):
            raise BadRequest("Invalid JSON body")
        return body

    def require(self, body: dict[str, Any], *names: str) -> list[Any]:
        missing = [name for name in names if body.get(name) in (None, "")]
        if missing:
            raise BadRequest(f"Missing required field(s): {', '.join(missing)}")
        return [body[name] for name in names]


@method_decorator(csrf_exempt, name="dispatch")
class LaunchView(JSONResponseMixin, View):
    """
    POST /orchestration/launch/
        Create an orchestration from a design and enqueue its start action.

    Request body:
    {
        "project_id": 1,
        "design_id": 2,
        "node_id": 3,
        "feature": "auth-rework",
        "branch": "tina/auth-rework",
        "policy_preset": "balanced",
        "requested_by": "web:alice",
        "idempotency_key": "...",
        "total_phases": 3,          // Optional: defaults to design phase count
        "ticket_ids": [4, 5],       // Optional
        "policy_overrides": {...}   // Optional: {"review": {...}, "model": {...}}
    }
    """

    def post(self, request):
        try:
            body = self.parse_body(request)
            project_id, design_id, node_id, feature, branch, preset, requested_by, key = (
                self.require(
                    body,
                    "project_id",
                    "design_id",
                    "node_id",
                    "feature",
                    "branch",
                    "policy_preset",
                    "requested_by",
                    "idempotency_key",
                )
            )
        except BadRequest as exc:
            return self.error_response(str(exc), status=400)

        try:
            result = control_plane.launch_orchestration(
                project_id=project_id,
                design_id=design_id,
                node_id=node_id,
                feature=feature,
                branch=branch,
                policy_preset=preset,
                requested_by=requested_by,
                idempotency_key=key,
                total_phases=body.get("total_phases"),
                ticket_ids=body.get("ticket_ids"),
                policy_overrides=body.get("policy_overrides"),
            )
        except ControlPlaneError as exc:
            return self.control_plane_error_response(exc)

        return self.json_response(result.to_dict(), status=201)


@method_decorator(csrf_exempt, name="dispatch")
class StartView(JSONResponseMixin, View):
    """
    POST /orchestration/<orchestration_id>/start/
        Record the launch policy (first call only) and enqueue start_orchestration.
    """

    def post(self, request, orchestration_id: int):
        try:
            body = self.parse_body(request)
            node_id, snapshot, snapshot_hash, requested_by, key = self.require(
                body,
                "node_id",
                "policy_snapshot",
                "policy_snapshot_hash",
                "requested_by",
                "idempotency_key",
            )
        except BadRequest as exc:
            return self.error_response(str(exc), status=400)

        try:
            action_id = control_plane.start_orchestration(
                orchestration_id,
                node_id,
                policy_snapshot=snapshot,
                policy_snapshot_hash=snapshot_hash,
                requested_by=requested_by,
                idempotency_key=key,
                preset_origin=body.get("preset_origin"),
                design_only=body.get("design_only"),
            )
        except ControlPlaneError as exc:
            return self.control_plane_error_response(exc)

        return self.json_response({"action_id": action_id}, status=201)


@method_decorator(csrf_exempt, name="dispatch")
class ControlActionsView(JSONResponseMixin, View):
    """
    GET /orchestration/<orchestration_id>/actions/
        List control actions, newest first. Query params: limit.

    POST /orchestration/<orchestration_id>/actions/
        Enqueue a runtime control action.

    Request body:
    {
        "node_id": 3,
        "action_type": "pause",
        "payload": {"feature": "auth-rework", "phase": "1"},  // object or JSON text
        "requested_by": "web:alice",
        "idempotency_key": "..."
    }
    """

    def get(self, request, orchestration_id: int):
        try:
            limit = int(request.GET["limit"]) if "limit" in request.GET else None
        except ValueError:
            return self.error_response("limit must be an integer", status=400)
        if limit is not None and limit < 1:
            return self.error_response("limit must be a positive integer", status=400)

        actions = queries.list_control_actions(orchestration_id, limit=limit)
        return self.json_response(
            {
                "count": len(actions),
                "actions": [queries.serialize_action(action) for action in actions],
            }
        )

    def post(self, request, orchestration_id: int):
        try:
            body = self.parse_body(request)
            node_id, action_type, requested_by, key = self.require(
                body, "node_id", "action_type", "requested_by", "idempotency_key"
            )
        except BadRequest as exc:
            return self.error_response(str(exc), status=400)

        payload = body.get("payload", "")
        if not isinstance(payload, str):
            payload = json.dumps(payload)

        try:
            action_id = control_plane.enqueue_control_action(
                orchestration_id,
                node_id,
                action_type,
                payload,
                requested_by,
                key,
            )
        except ControlPlaneError as exc:
            return self.control_plane_error_response(exc)

        return self.json_response({"action_id": action_id}, status=201)


@method_decorator(csrf_exempt, name="dispatch")
class OrchestrationDetailView(JSONResponseMixin, View):
    """GET /orchestration/<orchestration_id>/"""

    def get(self, request, orchestration_id: int):
        detail = queries.get_orchestration_detail(orchestration_id)
        if detail is None:
            return self.error_response("Orchestration not found", status=404)
        return self.json_response(detail)


@method_decorator(csrf_exempt, name="dispatch")
class PolicyView(JSONResponseMixin, View):
    """
    GET /orchestration/<orchestration_id>/policy/snapshot/
    GET /orchestration/<orchestration_id>/policy/active/

    Both answer {"policy": null} when there is nothing to show.
    """

    def get(self, request, orchestration_id: int, kind: str = "snapshot"):
        if kind == "active":
            policy = queries.get_active_policy(orchestration_id)
        else:
            policy = queries.get_latest_policy_snapshot(orchestration_id)
        return self.json_response({"policy": policy})


@method_decorator(csrf_exempt, name="dispatch")
class DeleteOrchestrationView(JSONResponseMixin, View):
    """
    POST /orchestration/<orchestration_id>/delete/
        Run one staged-deletion step and return its result. Callers repeat
        until "done" is true.

    POST /orchestration/<orchestration_id>/delete/async/
        Queue the self-rescheduling Celery deletion job.
    """

    def post(self, request, orchestration_id: int, mode: str = "sync"):
        if mode == "async":
            task_result = delete_orchestration_task.delay(orchestration_id)
            return self.json_response(
                {
                    "status": "queued",
                    "task_id": task_result.id,
                    "message": "Staged deletion queued",
                },
                status=202,
            )

        result = delete_orchestration(orchestration_id)
        return self.json_response(result.to_dict())
