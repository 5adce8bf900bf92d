"""
Control-plane command processor.

Every command follows the same path:

1. Look up an existing action for the idempotency key; if one exists return
   it without writing anything.
2. Validate the request.
3. Inside one transaction: lock the owning row (orchestration, or project
   for launches) and repeat the idempotency lookup under the lock, then run
   the type-specific domain logic, insert the ControlPlaneAction, insert its
   InboundAction queue entry (cross-linked), and append one
   OrchestrationEvent.

A duplicate that committed between the first lookup and the lock is found by
the second lookup, before any revision guard runs. One that still trips the
(orchestration, idempotency_key) unique constraint rolls the whole
transaction back and is answered with the winner's action id.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from django.db import IntegrityError, transaction

from apps.nodes.models import InboundAction, Node, heartbeat_timeout
from apps.orchestration import revisions
from apps.orchestration.dtos import (
    Command,
    LaunchResult,
    SetPolicyCommand,
    SetRoleModelCommand,
    TaskEditCommand,
    TaskInsertCommand,
    TaskSetModelCommand,
)
from apps.orchestration.errors import (
    ControlPlaneError,
    InvalidActionError,
    NodeOfflineError,
    ReferenceNotFoundError,
)
from apps.orchestration.models import (
    ActionType,
    ControlPlaneAction,
    EventType,
    Orchestration,
    OrchestrationEvent,
)
from apps.orchestration.presets import UnknownPresetError, hash_policy, resolve_policy
from apps.orchestration.signals import (
    CommandTimer,
    SignalTags,
    emit_action_enqueued,
    emit_action_rejected,
    emit_action_replayed,
)
from apps.orchestration.validation import validate_action
from apps.projects.models import Design, Project, Ticket

logger = logging.getLogger(__name__)

EVENT_SOURCE = "control_plane"


def _existing_action(orchestration_id: int, idempotency_key: str) -> ControlPlaneAction | None:
    return ControlPlaneAction.objects.filter(
        orchestration_id=orchestration_id,
        idempotency_key=idempotency_key,
    ).first()


def _lock_orchestration(orchestration_id: int) -> Orchestration:
    orchestration = Orchestration.objects.select_for_update().filter(pk=orchestration_id).first()
    if orchestration is None:
        raise ReferenceNotFoundError("Orchestration not found")
    return orchestration


def _require_node(node_id: int) -> Node:
    node = Node.objects.filter(pk=node_id).first()
    if node is None:
        raise ReferenceNotFoundError("Node not found")
    return node


def _record_action(
    orchestration: Orchestration,
    node_id: int,
    action_type: str,
    payload: str,
    requested_by: str,
    idempotency_key: str,
    event_type: str,
    summary: str,
) -> ControlPlaneAction:
    """Write the action, its queue entry and the audit event."""
    action = ControlPlaneAction.objects.create(
        orchestration=orchestration,
        action_type=action_type,
        payload=payload,
        requested_by=requested_by,
        idempotency_key=idempotency_key,
    )
    queue_entry = InboundAction.objects.create(
        node_id=node_id,
        orchestration=orchestration,
        type=action_type,
        payload=payload,
        control_action=action,
        idempotency_key=idempotency_key,
    )
    action.queue_action = queue_entry
    action.save(update_fields=["queue_action"])

    OrchestrationEvent.objects.create(
        orchestration=orchestration,
        event_type=event_type,
        source=EVENT_SOURCE,
        summary=summary,
        detail=payload,
    )
    return action


def _resolved_duplicate(tags: SignalTags, action: ControlPlaneAction) -> tuple[ControlPlaneAction, bool]:
    logger.info(
        "Concurrent duplicate resolved to existing action",
        extra={**tags.to_dict(), "action_id": action.pk},
    )
    emit_action_replayed(tags, action.pk)
    return action, True


def _execute(
    tags: SignalTags,
    find_existing: Callable[[], ControlPlaneAction | None],
    body: Callable[[], tuple[ControlPlaneAction, bool]],
) -> tuple[ControlPlaneAction, bool]:
    """
    Run body() once per idempotency key.

    body() returns (action, replayed); replayed is True when it found the
    key already recorded after taking its lock.

    Returns (action, replayed).
    """
    existing = find_existing()
    if existing is not None:
        emit_action_replayed(tags, existing.pk)
        return existing, True

    try:
        with CommandTimer(tags), transaction.atomic():
            action, replayed = body()
    except IntegrityError:
        existing = find_existing()
        if existing is None:
            raise
        return _resolved_duplicate(tags, existing)
    except ControlPlaneError as exc:
        logger.warning(
            f"Control action rejected: {exc.message}",
            extra={**tags.to_dict(), "reason_code": exc.reason_code},
        )
        emit_action_rejected(tags, exc.reason_code, exc.message)
        raise

    if replayed:
        return _resolved_duplicate(tags, action)

    logger.info(
        "Control action enqueued",
        extra={**tags.to_dict(), "action_id": action.pk},
    )
    emit_action_enqueued(tags, action.pk)
    return action, False


def _apply_domain_logic(orchestration: Orchestration, command: Command, requested_by: str) -> None:
    if isinstance(command, (SetPolicyCommand, SetRoleModelCommand)):
        revisions.apply_policy_change(orchestration, command)
    elif isinstance(command, TaskEditCommand):
        revisions.edit_task(orchestration.pk, command)
    elif isinstance(command, TaskInsertCommand):
        revisions.insert_task(orchestration.pk, command, requested_by)
    elif isinstance(command, TaskSetModelCommand):
        revisions.set_task_model(orchestration.pk, command)
    # pause / resume / retry carry no server-side state change; the worker acts on them.


def enqueue_control_action(
    orchestration_id: int,
    node_id: int,
    action_type: str,
    payload: str,
    requested_by: str,
    idempotency_key: str,
) -> int:
    """
    Validate and enqueue a runtime control action.

    Returns the ControlPlaneAction id (the existing one on replay).

    Raises:
        InvalidActionError: rejected by apps.orchestration.validation.
        RevisionConflictError: stale policy or task revision.
        ReferenceNotFoundError: unknown orchestration, node or task.
    """
    tags = SignalTags(
        orchestration_id=orchestration_id,
        action_type=action_type,
        idempotency_key=idempotency_key,
        requested_by=requested_by,
        node_id=node_id,
    )

    def body() -> tuple[ControlPlaneAction, bool]:
        command = validate_action(action_type, payload)
        orchestration = _lock_orchestration(orchestration_id)
        existing = _existing_action(orchestration_id, idempotency_key)
        if existing is not None:
            return existing, True
        _require_node(node_id)
        _apply_domain_logic(orchestration, command, requested_by)
        action = _record_action(
            orchestration,
            node_id,
            action_type,
            payload,
            requested_by,
            idempotency_key,
            EventType.CONTROL_ACTION_REQUESTED,
            f"{action_type} requested by {requested_by}",
        )
        return action, False

    action, _ = _execute(tags, lambda: _existing_action(orchestration_id, idempotency_key), body)
    return action.pk


def start_orchestration(
    orchestration_id: int,
    node_id: int,
    *,
    policy_snapshot: str | dict[str, Any],
    policy_snapshot_hash: str,
    requested_by: str,
    idempotency_key: str,
    preset_origin: str | None = None,
    design_only: bool | None = None,
) -> int:
    """
    Record the launch policy (first call only) and enqueue start_orchestration.

    The stored snapshot is never overwritten; later calls still enqueue a
    start action but leave the policy fields as they were.
    """
    if isinstance(policy_snapshot, dict):
        policy_snapshot = json.dumps(policy_snapshot)

    action_type = ActionType.START_ORCHESTRATION.value
    tags = SignalTags(
        orchestration_id=orchestration_id,
        action_type=action_type,
        idempotency_key=idempotency_key,
        requested_by=requested_by,
        node_id=node_id,
    )

    def body() -> tuple[ControlPlaneAction, bool]:
        orchestration = _lock_orchestration(orchestration_id)
        existing = _existing_action(orchestration_id, idempotency_key)
        if existing is not None:
            return existing, True
        _require_node(node_id)

        if not orchestration.policy_snapshot:
            orchestration.policy_snapshot = policy_snapshot
            orchestration.policy_snapshot_hash = policy_snapshot_hash
            update_fields = ["policy_snapshot", "policy_snapshot_hash", "updated_at"]
            if preset_origin is not None:
                orchestration.preset_origin = preset_origin
                update_fields.append("preset_origin")
            if design_only is not None:
                orchestration.design_only = design_only
                update_fields.append("design_only")
            if not orchestration.live_policy:
                orchestration.live_policy = orchestration.snapshot_dict() or {}
                update_fields.append("live_policy")
            orchestration.save(update_fields=update_fields)

        start_payload = {"policySnapshotHash": policy_snapshot_hash}
        if preset_origin is not None:
            start_payload["presetOrigin"] = preset_origin
        if design_only is not None:
            start_payload["designOnly"] = design_only
        payload = json.dumps(start_payload)

        action = _record_action(
            orchestration,
            node_id,
            action_type,
            payload,
            requested_by,
            idempotency_key,
            EventType.CONTROL_ACTION_REQUESTED,
            f"{action_type} requested by {requested_by}",
        )
        return action, False

    action, _ = _execute(tags, lambda: _existing_action(orchestration_id, idempotency_key), body)
    return action.pk


def _check_node_online(node: Node) -> None:
    if not node.is_online():
        timeout = int(heartbeat_timeout().total_seconds())
        raise NodeOfflineError(
            f'Node "{node.name}" is offline: no heartbeat in the last {timeout} seconds'
        )


def _ticket_id_list(ticket_ids: Any) -> list[int]:
    if ticket_ids is None:
        return []
    if not isinstance(ticket_ids, list) or not all(
        isinstance(ticket_id, int) and not isinstance(ticket_id, bool) for ticket_id in ticket_ids
    ):
        raise InvalidActionError("ticket_ids must be a list of integers")
    return list(ticket_ids)


def launch_orchestration(
    *,
    project_id: int,
    design_id: int,
    node_id: int,
    feature: str,
    branch: str,
    policy_preset: str,
    requested_by: str,
    idempotency_key: str,
    total_phases: int | None = None,
    ticket_ids: list[int] | None = None,
    policy_overrides: dict[str, Any] | None = None,
) -> LaunchResult:
    """
    Create an orchestration and enqueue its start action.

    total_phases defaults to the design's phase count. A repeated call with
    the same idempotency key for the same project returns the original ids.

    Raises:
        ReferenceNotFoundError: unknown project, design, node or ticket, or
            a design/ticket belonging to another project.
        NodeOfflineError: the node has no recent heartbeat.
        InvalidActionError: unknown preset, bad phase count, or ticket_ids
            that is not a list of integers.
    """
    action_type = ActionType.START_ORCHESTRATION.value
    tags = SignalTags(
        orchestration_id=None,
        action_type=action_type,
        idempotency_key=idempotency_key,
        requested_by=requested_by,
        node_id=node_id,
        extra={"project_id": project_id, "feature": feature},
    )

    def find_existing() -> ControlPlaneAction | None:
        return ControlPlaneAction.objects.filter(
            orchestration__project_id=project_id,
            orchestration__launch_idempotency_key=idempotency_key,
            idempotency_key=idempotency_key,
        ).first()

    def body() -> tuple[ControlPlaneAction, bool]:
        project = Project.objects.select_for_update().filter(pk=project_id).first()
        if project is None:
            raise ReferenceNotFoundError(f"Project not found: {project_id}")
        existing = find_existing()
        if existing is not None:
            return existing, True

        design = Design.objects.filter(pk=design_id).first()
        if design is None:
            raise ReferenceNotFoundError(f"Design not found: {design_id}")
        if design.project_id != project.pk:
            raise ReferenceNotFoundError(
                f"Design {design_id} does not belong to project {project_id}"
            )

        node = _require_node(node_id)
        _check_node_online(node)

        tickets = _ticket_id_list(ticket_ids)
        found = Ticket.objects.in_bulk(tickets)
        for ticket_id in tickets:
            ticket = found.get(ticket_id)
            if ticket is None:
                raise ReferenceNotFoundError(f"Ticket not found: {ticket_id}")
            if ticket.project_id != project.pk:
                raise ReferenceNotFoundError(
                    f"Ticket {ticket_id} does not belong to project {project_id}"
                )

        try:
            policy = resolve_policy(policy_preset, policy_overrides)
        except UnknownPresetError as exc:
            raise InvalidActionError(str(exc)) from None

        phases = total_phases if total_phases is not None else design.phase_count
        if not isinstance(phases, int) or isinstance(phases, bool) or phases < 1:
            raise InvalidActionError(f"Invalid totalPhases: {phases!r}. Must be a positive integer")

        design_only = not tickets
        orchestration = Orchestration.objects.create(
            node=node,
            project=project,
            design=design,
            feature_name=feature,
            design_doc_path=f"designs/{design.pk}",
            branch=branch,
            total_phases=phases,
            current_phase=1,
            status="launching",
            policy_snapshot=json.dumps(policy),
            policy_snapshot_hash=hash_policy(policy),
            preset_origin=policy_preset,
            design_only=design_only,
            policy_revision=0,
            live_policy=policy,
            launch_idempotency_key=idempotency_key,
        )
        tags.orchestration_id = orchestration.pk

        payload = json.dumps(
            {
                "feature": feature,
                "design_id": design.pk,
                "cwd": project.repo_path,
                "branch": branch,
                "total_phases": phases,
                "design_only": design_only,
                "ticket_ids": tickets,
                "policy": policy,
            }
        )
        action = _record_action(
            orchestration,
            node.pk,
            action_type,
            payload,
            requested_by,
            idempotency_key,
            EventType.LAUNCH_REQUESTED,
            f'{action_type} requested by {requested_by}: launch "{feature}" '
            f'on node "{node.name}"',
        )
        return action, False

    action, _ = _execute(tags, find_existing, body)
    return LaunchResult(orchestration_id=action.orchestration_id, action_id=action.pk)
