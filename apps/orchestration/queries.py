"""
Read operations over orchestrations and their control-plane state.

Reads never raise for missing or malformed data: they return None so callers
can render "nothing yet" without special-casing errors.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from django.conf import settings

from apps.orchestration.models import ControlPlaneAction, Orchestration, SupervisorState
from apps.orchestration.task_events import current_tasks

logger = logging.getLogger(__name__)


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def serialize_action(action: ControlPlaneAction) -> dict[str, Any]:
    return {
        "id": action.pk,
        "orchestration_id": action.orchestration_id,
        "action_type": action.action_type,
        "payload": action.payload,
        "requested_by": action.requested_by,
        "idempotency_key": action.idempotency_key,
        "status": action.status,
        "queue_action_id": action.queue_action_id,
        "result": action.result or None,
        "created_at": _isoformat(action.created_at),
        "completed_at": _isoformat(action.completed_at),
    }


def list_control_actions(orchestration_id: int, limit: int | None = None) -> list[ControlPlaneAction]:
    """Return the orchestration's control actions, newest first. A limit below 1 returns none."""
    if limit is None:
        limit = int(getattr(settings, "CONTROL_ACTION_LIST_LIMIT", 50))
    if limit < 1:
        return []
    return list(
        ControlPlaneAction.objects.filter(orchestration_id=orchestration_id).order_by(
            "-created_at", "-id"
        )[:limit]
    )


def get_latest_policy_snapshot(orchestration_id: int) -> dict[str, Any] | None:
    """Return the launch policy snapshot, or None if there is none."""
    orchestration = Orchestration.objects.filter(pk=orchestration_id).first()
    if orchestration is None or not orchestration.policy_snapshot:
        return None
    return {
        "policy_snapshot": orchestration.policy_snapshot,
        "policy_snapshot_hash": orchestration.policy_snapshot_hash or None,
        "preset_origin": orchestration.preset_origin or None,
    }


def get_active_policy(orchestration_id: int) -> dict[str, Any] | None:
    """
    Return the policy the worker is currently running with.

    model_policy and review_policy come from the newest supervisor state for
    the orchestration's feature; the revision and launch snapshot come from
    the orchestration.
    """
    orchestration = Orchestration.objects.filter(pk=orchestration_id).first()
    if orchestration is None:
        return None

    state = (
        SupervisorState.objects.filter(feature_name=orchestration.feature_name)
        .order_by("-updated_at", "-id")
        .first()
    )
    if state is None:
        return None

    try:
        parsed = json.loads(state.state_json)
    except json.JSONDecodeError:
        logger.warning(
            "Unparseable supervisor state",
            extra={"orchestration_id": orchestration_id, "supervisor_state_id": state.pk},
        )
        return None
    if not isinstance(parsed, dict):
        return None

    return {
        "model_policy": parsed.get("model_policy"),
        "review_policy": parsed.get("review_policy"),
        "policy_revision": orchestration.policy_revision or 0,
        "launch_snapshot": orchestration.policy_snapshot or None,
        "preset_origin": orchestration.preset_origin or None,
    }


def _serialize_task_event(event) -> dict[str, Any]:
    return {
        "task_id": event.task_id,
        "phase_number": event.phase_number,
        "subject": event.subject,
        "description": event.description,
        "status": event.status,
        "owner": event.owner or None,
        "blocked_by": event.blocked_by or None,
        "recorded_at": event.recorded_at,
    }


def get_orchestration_detail(orchestration_id: int) -> dict[str, Any] | None:
    """Orchestration fields with node name, phases, current tasks and team members."""
    orchestration = (
        Orchestration.objects.select_related("node").filter(pk=orchestration_id).first()
    )
    if orchestration is None:
        return None

    phases = [
        {
            "phase_number": phase.phase_number,
            "status": phase.status,
            "plan_path": phase.plan_path or None,
            "git_range": phase.git_range or None,
            "started_at": _isoformat(phase.started_at),
            "completed_at": _isoformat(phase.completed_at),
        }
        for phase in orchestration.phases.order_by("phase_number")
    ]
    team_members = list(
        orchestration.team_members.order_by("phase_number", "agent_name").values(
            "phase_number", "agent_name", "agent_type", "model"
        )
    )
    execution_tasks = list(
        orchestration.execution_tasks.order_by("phase_number", "task_number").values(
            "phase_number",
            "task_number",
            "subject",
            "status",
            "model",
            "depends_on",
            "revision",
        )
    )

    return {
        "id": orchestration.pk,
        "node_id": orchestration.node_id,
        "node_name": orchestration.node.name,
        "project_id": orchestration.project_id,
        "design_id": orchestration.design_id,
        "feature_name": orchestration.feature_name,
        "branch": orchestration.branch,
        "design_doc_path": orchestration.design_doc_path,
        "total_phases": orchestration.total_phases,
        "current_phase": orchestration.current_phase,
        "status": orchestration.status,
        "started_at": _isoformat(orchestration.started_at),
        "completed_at": _isoformat(orchestration.completed_at),
        "policy_revision": orchestration.policy_revision,
        "preset_origin": orchestration.preset_origin or None,
        "design_only": orchestration.design_only,
        "phases": phases,
        "tasks": [_serialize_task_event(event) for event in current_tasks(orchestration.pk)],
        "execution_tasks": execution_tasks,
        "team_members": team_members,
    }
