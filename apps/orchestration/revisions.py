"""
Revision guards for policy and task mutations.

Both guards are compare-and-swap updates: the UPDATE only matches while the
stored revision still equals the one the caller read, so of two writers racing
on the same revision exactly one succeeds and the other gets a conflict.

All functions here must run inside the caller's transaction.atomic() block.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from django.db.models import F, Max
from django.utils import timezone

from apps.orchestration import reason_codes
from apps.orchestration.dtos import (
    SetPolicyCommand,
    SetRoleModelCommand,
    TaskEditCommand,
    TaskInsertCommand,
    TaskSetModelCommand,
)
from apps.orchestration.errors import ReferenceNotFoundError, RevisionConflictError
from apps.orchestration.models import ExecutionTask, ExecutionTaskStatus, Orchestration

logger = logging.getLogger(__name__)


def _policy_conflict(expected: int, current: int) -> RevisionConflictError:
    return RevisionConflictError(
        f"Policy revision conflict: expected {expected}, current is {current}. Reload and retry."
    )


def _task_conflict(expected: int, current: int) -> RevisionConflictError:
    return RevisionConflictError(
        f"Task revision conflict: expected {expected}, current is {current}. Reload and retry."
    )


def merge_policy(base: dict[str, Any], delta: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Return base with each section of delta merged key by key."""
    merged = copy.deepcopy(base) if base else {}
    for section, values in delta.items():
        current = merged.get(section)
        if not isinstance(current, dict):
            current = {}
        merged[section] = {**current, **values}
    return merged


def apply_policy_change(
    orchestration: Orchestration,
    command: SetPolicyCommand | SetRoleModelCommand,
) -> int:
    """
    Apply a policy delta if target_revision matches the stored revision.

    Returns the new policy revision.

    Raises:
        RevisionConflictError: the caller's revision is stale.
    """
    current = orchestration.policy_revision or 0
    if command.target_revision != current:
        raise _policy_conflict(command.target_revision, current)

    base = orchestration.live_policy or orchestration.snapshot_dict() or {}
    live_policy = merge_policy(base, command.delta())

    updated = Orchestration.objects.filter(pk=orchestration.pk, policy_revision=current).update(
        policy_revision=F("policy_revision") + 1,
        live_policy=live_policy,
        updated_at=timezone.now(),
    )
    if updated == 0:
        latest = (
            Orchestration.objects.filter(pk=orchestration.pk)
            .values_list("policy_revision", flat=True)
            .first()
        )
        raise _policy_conflict(command.target_revision, latest if latest is not None else current)

    orchestration.policy_revision = current + 1
    orchestration.live_policy = live_policy
    logger.info(
        "Policy revision advanced",
        extra={
            "orchestration_id": orchestration.pk,
            "action_type": command.action_type,
            "policy_revision": orchestration.policy_revision,
        },
    )
    return orchestration.policy_revision


def get_task(orchestration_id: int, phase_number: str, task_number: int) -> ExecutionTask:
    """Return the task or raise ReferenceNotFoundError."""
    task = (
        ExecutionTask.objects.select_for_update()
        .filter(
            orchestration_id=orchestration_id,
            phase_number=phase_number,
            task_number=task_number,
        )
        .first()
    )
    if task is None:
        raise ReferenceNotFoundError(f"Task {task_number} not found in phase {phase_number}")
    return task


def guard_pending_task(
    orchestration_id: int, phase_number: str, task_number: int, revision: int
) -> ExecutionTask:
    """
    Return a task that is pending and at the expected revision.

    Raises:
        ReferenceNotFoundError: no such task.
        RevisionConflictError: task is not pending or its revision moved.
    """
    task = get_task(orchestration_id, phase_number, task_number)
    if task.status != ExecutionTaskStatus.PENDING:
        raise RevisionConflictError(
            f'Cannot modify task {task_number}: status is "{task.status}" (must be "pending")',
            reason_code=reason_codes.VALIDATION_INVALID_STATE,
        )
    if task.revision != revision:
        raise _task_conflict(revision, task.revision)
    return task


def _patch_task(task: ExecutionTask, changes: dict[str, Any]) -> ExecutionTask:
    expected = task.revision
    updated = ExecutionTask.objects.filter(
        pk=task.pk,
        revision=expected,
        status=ExecutionTaskStatus.PENDING,
    ).update(revision=F("revision") + 1, updated_at=timezone.now(), **changes)
    if updated == 0:
        task.refresh_from_db()
        if task.status != ExecutionTaskStatus.PENDING:
            raise RevisionConflictError(
                f'Cannot modify task {task.task_number}: status is "{task.status}" '
                f'(must be "pending")',
                reason_code=reason_codes.VALIDATION_INVALID_STATE,
            )
        raise _task_conflict(expected, task.revision)
    task.refresh_from_db()
    return task


def edit_task(orchestration_id: int, command: TaskEditCommand) -> ExecutionTask:
    """Apply the fields present in a task_edit command."""
    task = guard_pending_task(
        orchestration_id, command.phase_number, command.task_number, command.revision
    )
    return _patch_task(task, command.changes())


def set_task_model(orchestration_id: int, command: TaskSetModelCommand) -> ExecutionTask:
    """Change only the model of a pending task."""
    task = guard_pending_task(
        orchestration_id, command.phase_number, command.task_number, command.revision
    )
    return _patch_task(task, {"model": command.model})


def insert_task(
    orchestration_id: int, command: TaskInsertCommand, requested_by: str
) -> ExecutionTask:
    """
    Append a new pending task to a phase.

    after_task must exist unless it is 0. The new task takes the next free
    number in the phase, regardless of after_task.
    """
    phase_tasks = ExecutionTask.objects.filter(
        orchestration_id=orchestration_id,
        phase_number=command.phase_number,
    )
    existing_numbers = set(phase_tasks.values_list("task_number", flat=True))

    if command.after_task > 0 and command.after_task not in existing_numbers:
        raise ReferenceNotFoundError(
            f"afterTask {command.after_task} not found in phase {command.phase_number}"
        )
    for dep in command.depends_on or []:
        if dep not in existing_numbers:
            raise ReferenceNotFoundError(
                f"Dependency task {dep} not found in phase {command.phase_number}"
            )

    max_number = phase_tasks.aggregate(max_number=Max("task_number"))["max_number"] or 0
    return ExecutionTask.objects.create(
        orchestration_id=orchestration_id,
        phase_number=command.phase_number,
        task_number=max_number + 1,
        subject=command.subject,
        description=command.description or "",
        status=ExecutionTaskStatus.PENDING,
        model=command.model or "",
        depends_on=list(command.depends_on or []),
        revision=1,
        inserted_by=requested_by,
    )
