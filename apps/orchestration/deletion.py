"""
Staged deletion of an orchestration and everything that references it.

A single delete of a busy orchestration can touch tens of thousands of rows,
so deletion is split into short steps. Each step opens its own transaction,
finds the first dependent table that still holds rows for the orchestration,
and removes at most ORCHESTRATION_DELETE_BATCH_SIZE of them. Only when every
dependent table is empty is the orchestration row itself deleted.

Steps keep no state between calls: every call re-queries what still
references the orchestration, so a crash or retry at any step boundary is safe.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet

from apps.nodes.models import InboundAction
from apps.orchestration.dtos import DeleteStepResult
from apps.orchestration.models import (
    Commit,
    ControlPlaneAction,
    ExecutionTask,
    Orchestration,
    OrchestrationEvent,
    Phase,
    Plan,
    SupervisorState,
    TaskEvent,
    Team,
    TeamMember,
)
from apps.orchestration.signals import emit_delete_completed, emit_delete_step

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 64
DEFAULT_MAX_STEPS = 400


def get_batch_size() -> int:
    return int(getattr(settings, "ORCHESTRATION_DELETE_BATCH_SIZE", DEFAULT_BATCH_SIZE))


def dependent_tables(orchestration: Orchestration) -> list[tuple[str, QuerySet]]:
    """Return (table name, queryset) pairs in deletion order."""
    pk = orchestration.pk
    return [
        ("phases", Phase.objects.filter(orchestration_id=pk)),
        ("task_events", TaskEvent.objects.filter(orchestration_id=pk)),
        ("execution_tasks", ExecutionTask.objects.filter(orchestration_id=pk)),
        ("team_members", TeamMember.objects.filter(orchestration_id=pk)),
        ("teams", Team.objects.filter(orchestration_id=pk)),
        ("commits", Commit.objects.filter(orchestration_id=pk)),
        ("plans", Plan.objects.filter(orchestration_id=pk)),
        ("control_plane_actions", ControlPlaneAction.objects.filter(orchestration_id=pk)),
        ("inbound_actions", InboundAction.objects.filter(orchestration_id=pk)),
        ("orchestration_events", OrchestrationEvent.objects.filter(orchestration_id=pk)),
        (
            "supervisor_states",
            SupervisorState.objects.filter(
                feature_name=orchestration.feature_name,
                node_id=orchestration.node_id,
            ),
        ),
    ]


def _delete_batch(queryset: QuerySet, batch_size: int) -> int:
    ids = list(queryset.order_by("pk").values_list("pk", flat=True)[:batch_size])
    if not ids:
        return 0
    queryset.model.objects.filter(pk__in=ids).delete()
    return len(ids)


def delete_orchestration(orchestration_id: int, batch_size: int | None = None) -> DeleteStepResult:
    """
    Run one deletion step.

    Returns done=False with the table being drained while work remains, and
    done=True once the orchestration row is gone. A missing orchestration
    returns done=True, deleted=False.
    """
    batch_size = batch_size or get_batch_size()

    with transaction.atomic():
        orchestration = (
            Orchestration.objects.select_for_update().filter(pk=orchestration_id).first()
        )
        if orchestration is None:
            return DeleteStepResult(
                done=True,
                deleted=False,
                deleted_orchestration_id=orchestration_id,
            )

        for table, queryset in dependent_tables(orchestration):
            deleted_rows = _delete_batch(queryset, batch_size)
            if deleted_rows:
                logger.debug(
                    "Deleted orchestration child rows",
                    extra={
                        "orchestration_id": orchestration_id,
                        "table": table,
                        "deleted_rows": deleted_rows,
                    },
                )
                emit_delete_step(orchestration_id, table, deleted_rows)
                return DeleteStepResult(
                    done=False,
                    pending_table=table,
                    deleted_rows=deleted_rows,
                )

        orchestration.delete()

    logger.info("Orchestration deleted", extra={"orchestration_id": orchestration_id})
    emit_delete_completed(orchestration_id, deleted=True)
    return DeleteStepResult(done=True, deleted=True, deleted_orchestration_id=orchestration_id)


def delete_orchestration_until_done(
    orchestration_id: int,
    max_steps: int | None = None,
    batch_size: int | None = None,
) -> tuple[DeleteStepResult, int]:
    """
    Call delete_orchestration() until it reports done or max_steps is reached.

    Returns (last step result, steps taken). The last result has done=False
    when the step limit ran out first; calling again resumes where it stopped.
    """
    if max_steps is None:
        max_steps = int(getattr(settings, "ORCHESTRATION_DELETE_MAX_STEPS", DEFAULT_MAX_STEPS))

    steps = 0
    result = DeleteStepResult(done=False)
    while steps < max_steps:
        result = delete_orchestration(orchestration_id, batch_size=batch_size)
        steps += 1
        if result.done:
            break
    else:
        logger.warning(
            "Staged deletion stopped at step limit",
            extra={"orchestration_id": orchestration_id, "max_steps": max_steps},
        )
    return result, steps
