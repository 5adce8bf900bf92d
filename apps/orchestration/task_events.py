"""
Current task state derived from the append-only task event log.

The worker reports every task status change as a new TaskEvent row. Readers
want one row per task: the most recent report.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from django.conf import settings

from apps.orchestration.models import TaskEvent

# Key used for tasks that belong to the orchestrator rather than a phase.
ORCHESTRATOR_SENTINEL = "__orchestrator__"

DEFAULT_EVENT_LIMIT = 1000


def _field(event: Any, name: str, camel: str | None = None) -> Any:
    if isinstance(event, Mapping):
        if name in event:
            return event[name]
        return event.get(camel) if camel else None
    return getattr(event, name, None)


def task_key(event: Any) -> tuple[str, str]:
    """Return (phase number or sentinel, task id) for an event."""
    phase_number = _field(event, "phase_number", "phaseNumber")
    return (phase_number or ORCHESTRATOR_SENTINEL, _field(event, "task_id", "taskId"))


def deduplicate_task_events(events: Iterable[Any]) -> list[Any]:
    """
    Keep the latest event per task.

    Events may be mappings (snake_case or camelCase keys) or TaskEvent
    instances. "Latest" compares recorded_at as strings, which is correct for
    ISO-8601 timestamps; on equal timestamps the event seen later wins.
    Output order follows the first appearance of each task.
    """
    latest: dict[tuple[str, str], Any] = {}
    for event in events:
        key = task_key(event)
        current = latest.get(key)
        if current is None:
            latest[key] = event
            continue
        recorded_at = _field(event, "recorded_at", "recordedAt") or ""
        current_recorded_at = _field(current, "recorded_at", "recordedAt") or ""
        if recorded_at >= current_recorded_at:
            latest[key] = event
    return list(latest.values())


def recent_task_events(orchestration_id: int, limit: int | None = None) -> list[TaskEvent]:
    """Load the newest task events for an orchestration, oldest first."""
    if limit is None:
        limit = int(getattr(settings, "ORCHESTRATION_TASK_EVENT_LIMIT", DEFAULT_EVENT_LIMIT))
    newest = TaskEvent.objects.filter(orchestration_id=orchestration_id).order_by(
        "-recorded_at", "-id"
    )[:limit]
    return list(reversed(newest))


def current_tasks(orchestration_id: int) -> list[TaskEvent]:
    """Deduplicated task state for an orchestration."""
    return deduplicate_task_events(recent_task_events(orchestration_id))


def task_exists(orchestration_id: int, task_id: str, phase_number: str | None = None) -> bool:
    """
    Whether a task currently exists in the orchestration.

    Used to validate feedback targets before they are recorded.
    """
    wanted = (phase_number or ORCHESTRATOR_SENTINEL, task_id)
    return any(task_key(event) == wanted for event in current_tasks(orchestration_id))
