"""Celery tasks for the control plane.

Staged deletion runs as a chain of short tasks: each run deletes one batch
and re-enqueues itself until the orchestration is gone.
"""

from __future__ import annotations

from typing import Any

from celery import shared_task
from django.db import OperationalError


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=10,
)
def delete_orchestration_task(self, orchestration_id: int, steps: int = 0) -> dict[str, Any]:
    """
    Run one staged-deletion step and schedule the next one.

    Args:
        orchestration_id: Orchestration to delete.
        steps: Steps already run by earlier tasks in the chain.

    Returns:
        The step result as dict, with the running step count.
    """
    from apps.orchestration.deletion import delete_orchestration

    result = delete_orchestration(orchestration_id)
    steps += 1
    if not result.done:
        delete_orchestration_task.delay(orchestration_id, steps=steps)

    return {**result.to_dict(), "steps": steps}
