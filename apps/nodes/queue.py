"""
Worker-facing dispatch queue operations.

A worker node polls pending_actions(), claims one entry at a time with
claim_action() and reports the outcome with complete_action(). Claiming is a
compare-and-swap on status, so two workers polling the same node never both
run an entry.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from apps.nodes.models import InboundAction, InboundActionStatus, Node
from apps.orchestration.dtos import ClaimResult
from apps.orchestration.errors import ReferenceNotFoundError
from apps.orchestration.models import ActionStatus, ControlPlaneAction

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
ALREADY_CLAIMED = "already_claimed"


def pending_actions(node_id: int) -> list[InboundAction]:
    """Pending queue entries for a node, oldest first."""
    return list(
        InboundAction.objects.filter(node_id=node_id, status=InboundActionStatus.PENDING).order_by(
            "created_at", "id"
        )
    )


def claim_action(action_id: int) -> ClaimResult:
    """Move a queue entry from pending to claimed."""
    updated = InboundAction.objects.filter(
        pk=action_id,
        status=InboundActionStatus.PENDING,
    ).update(status=InboundActionStatus.CLAIMED, claimed_at=timezone.now())
    if updated:
        logger.info("Queue entry claimed", extra={"inbound_action_id": action_id})
        return ClaimResult(success=True)
    if not InboundAction.objects.filter(pk=action_id).exists():
        return ClaimResult(success=False, reason=NOT_FOUND)
    return ClaimResult(success=False, reason=ALREADY_CLAIMED)


def complete_action(action_id: int, result: str, success: bool) -> InboundAction:
    """
    Record the worker's outcome for a queue entry.

    The linked ControlPlaneAction gets the same status, result and completion
    time.

    Raises:
        ReferenceNotFoundError: no such queue entry.
    """
    now = timezone.now()
    status = InboundActionStatus.COMPLETED if success else InboundActionStatus.FAILED

    with transaction.atomic():
        entry = InboundAction.objects.select_for_update().filter(pk=action_id).first()
        if entry is None:
            raise ReferenceNotFoundError(f"Inbound action not found: {action_id}")

        entry.status = status
        entry.result = result
        entry.completed_at = now
        entry.save(update_fields=["status", "result", "completed_at"])

        if entry.control_action_id is not None:
            ControlPlaneAction.objects.filter(pk=entry.control_action_id).update(
                status=ActionStatus.COMPLETED if success else ActionStatus.FAILED,
                result=result,
                completed_at=now,
            )

    logger.info(
        "Queue entry completed",
        extra={
            "inbound_action_id": action_id,
            "control_action_id": entry.control_action_id,
            "success": success,
        },
    )
    return entry


def record_heartbeat(node_id: int) -> Node:
    """
    Stamp a heartbeat for a node.

    Raises:
        ReferenceNotFoundError: no such node.
    """
    node = Node.objects.filter(pk=node_id).first()
    if node is None:
        raise ReferenceNotFoundError("Node not found")
    node.record_heartbeat()
    return node
