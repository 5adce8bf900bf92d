"""
Models for worker nodes and their dispatch queue.

A Node is a machine running the worker daemon. InboundAction is the queue
entry a node polls, claims and completes; every entry is produced by exactly
one ControlPlaneAction.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


def heartbeat_timeout() -> timedelta:
    """Return the configured heartbeat freshness window."""
    seconds = int(getattr(settings, "CONTROL_PLANE_NODE_HEARTBEAT_TIMEOUT_SECONDS", 120))
    return timedelta(seconds=seconds)


class NodeStatus(models.TextChoices):
    """Status reported by the worker daemon."""

    ONLINE = "online", "Online"
    OFFLINE = "offline", "Offline"


class Node(models.Model):
    """A worker node that executes orchestrations."""

    name = models.CharField(max_length=255, unique=True)
    os = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=NodeStatus.choices,
        default=NodeStatus.ONLINE,
    )
    last_heartbeat = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time the node reported in.",
    )
    registered_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def heartbeat_age(self, now: datetime | None = None) -> timedelta | None:
        """Return how long ago the node last reported in, or None if never."""
        if self.last_heartbeat is None:
            return None
        return (now or timezone.now()) - self.last_heartbeat

    def is_online(self, now: datetime | None = None, timeout: timedelta | None = None) -> bool:
        """A node is online while its last heartbeat is younger than the timeout."""
        age = self.heartbeat_age(now)
        if age is None:
            return False
        return age < (timeout if timeout is not None else heartbeat_timeout())

    def record_heartbeat(self, now: datetime | None = None):
        """Stamp a fresh heartbeat."""
        self.last_heartbeat = now or timezone.now()
        self.status = NodeStatus.ONLINE
        self.save(update_fields=["last_heartbeat", "status"])


class InboundActionStatus(models.TextChoices):
    """Lifecycle of a dispatch queue entry."""

    PENDING = "pending", "Pending"
    CLAIMED = "claimed", "Claimed"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class InboundAction(models.Model):
    """
    Dispatch queue entry targeting one worker node.

    Created in the same transaction as its ControlPlaneAction and cross-linked
    with it (control_action here, queue_action on the log record).
    """

    node = models.ForeignKey(
        Node,
        on_delete=models.PROTECT,
        related_name="inbound_actions",
    )
    orchestration = models.ForeignKey(
        "orchestration.Orchestration",
        on_delete=models.PROTECT,
        related_name="inbound_actions",
    )
    type = models.CharField(max_length=64, db_index=True)
    payload = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=InboundActionStatus.choices,
        default=InboundActionStatus.PENDING,
        db_index=True,
    )
    result = models.TextField(blank=True, default="")
    control_action = models.ForeignKey(
        "orchestration.ControlPlaneAction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="queue_entries",
    )
    idempotency_key = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now)
    claimed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["node", "status"]),
            models.Index(fields=["orchestration"]),
        ]

    def __str__(self):
        return f"{self.type} -> {self.node_id} [{self.status}]"
