"""
Views for the nodes app.

Endpoints polled by the worker daemon: heartbeat, pending queue entries,
claim and completion.
"""

import json
import logging

from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.nodes import queue
from apps.orchestration.errors import ReferenceNotFoundError
from apps.orchestration.views import JSONResponseMixin

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class HeartbeatView(JSONResponseMixin, View):
    """POST /nodes/<node_id>/heartbeat/"""

    def post(self, request, node_id: int):
        try:
            node = queue.record_heartbeat(node_id)
        except ReferenceNotFoundError as exc:
            return self.control_plane_error_response(exc)
        return self.json_response(
            {"node_id": node.pk, "last_heartbeat": node.last_heartbeat.isoformat()}
        )


@method_decorator(csrf_exempt, name="dispatch")
class PendingActionsView(JSONResponseMixin, View):
    """GET /nodes/<node_id>/actions/pending/"""

    def get(self, request, node_id: int):
        entries = queue.pending_actions(node_id)
        return self.json_response(
            {
                "count": len(entries),
                "actions": [
                    {
                        "id": entry.pk,
                        "orchestration_id": entry.orchestration_id,
                        "type": entry.type,
                        "payload": entry.payload,
                        "control_action_id": entry.control_action_id,
                        "created_at": entry.created_at.isoformat(),
                    }
                    for entry in entries
                ],
            }
        )


@method_decorator(csrf_exempt, name="dispatch")
class ClaimActionView(JSONResponseMixin, View):
    """
    POST /nodes/actions/<action_id>/claim/

    Answers 200 with {"success": true} for the winning claim and 409 with the
    reason ("already_claimed") for everyone else.
    """

    def post(self, request, action_id: int):
        result = queue.claim_action(action_id)
        if result.success:
            return self.json_response(result.to_dict())
        status = 404 if result.reason == queue.NOT_FOUND else 409
        return self.json_response(result.to_dict(), status=status)


@method_decorator(csrf_exempt, name="dispatch")
class CompleteActionView(JSONResponseMixin, View):
    """
    POST /nodes/actions/<action_id>/complete/

    Request body:
    {
        "success": false,
        "result": "{\"success\": false, \"error_code\": \"cli_exit_non_zero\"}"
    }
    """

    def post(self, request, action_id: int):
        try:
            body = json.loads(request.body) if request.body else {}
        except json.JSONDecodeError:
            return self.error_response("Invalid JSON body", status=400)
        if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
            return self.error_response('"success" (boolean) is required', status=400)

        result = body.get("result", "")
        if not isinstance(result, str):
            result = json.dumps(result)

        try:
            entry = queue.complete_action(action_id, result, body["success"])
        except ReferenceNotFoundError as exc:
            return self.control_plane_error_response(exc)

        return self.json_response({"id": entry.pk, "status": entry.status})
