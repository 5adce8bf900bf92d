"""
Models for orchestrations and the control plane.

An Orchestration is a long-lived, phase-structured workflow driven by a worker
node. Commands against it are logged as ControlPlaneAction rows (unique per
orchestration and idempotency key) and audited as OrchestrationEvent rows.

Every child table points at its orchestration with PROTECT: orchestrations are
removed by the staged deletion in apps.orchestration.deletion, never by a
single cascading delete.
"""

import json

from django.db import models
from django.db.models import Q
from django.utils import timezone


class ActionType(models.TextChoices):
    """Control-plane action types."""

    START_ORCHESTRATION = "start_orchestration", "Start orchestration"
    PAUSE = "pause", "Pause"
    RESUME = "resume", "Resume"
    RETRY = "retry", "Retry"
    SET_POLICY = "orchestration_set_policy", "Set policy"
    SET_ROLE_MODEL = "orchestration_set_role_model", "Set role model"
    TASK_EDIT = "task_edit", "Edit task"
    TASK_INSERT = "task_insert", "Insert task"
    TASK_SET_MODEL = "task_set_model", "Set task model"


class ActionStatus(models.TextChoices):
    """Status of a logged control-plane action."""

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class EventType(models.TextChoices):
    """Audit event types written by the control plane."""

    CONTROL_ACTION_REQUESTED = "control_action_requested", "Control action requested"
    LAUNCH_REQUESTED = "launch_requested", "Launch requested"


class ExecutionTaskStatus(models.TextChoices):
    """Execution task lifecycle."""

    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"
    SKIPPED = "skipped", "Skipped"


class Orchestration(models.Model):
    """
    A long-lived workflow instance.

    policy_snapshot is the launch policy (JSON text, written once).
    live_policy is the launch policy with every accepted policy delta applied;
    policy_revision counts accepted policy changes and is the compare-and-swap
    token callers pass as targetRevision.
    """

    node = models.ForeignKey(
        "nodes.Node",
        on_delete=models.PROTECT,
        related_name="orchestrations",
    )
    project = models.ForeignKey(
        "projects.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orchestrations",
    )
    design = models.ForeignKey(
        "projects.Design",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orchestrations",
    )

    feature_name = models.CharField(max_length=255, db_index=True)
    design_doc_path = models.CharField(max_length=1024, blank=True, default="")
    branch = models.CharField(max_length=255, blank=True, default="")
    worktree_path = models.CharField(max_length=1024, blank=True, default="")
    total_phases = models.PositiveIntegerField(default=1)
    current_phase = models.PositiveIntegerField(default=1)
    status = models.CharField(
        max_length=50,
        default="planning",
        db_index=True,
        help_text="Free-form lifecycle status reported by the worker.",
    )

    # Policy
    policy_snapshot = models.TextField(
        blank=True,
        default="",
        help_text="Launch policy as JSON text. Immutable once written.",
    )
    policy_snapshot_hash = models.CharField(max_length=100, blank=True, default="")
    preset_origin = models.CharField(max_length=50, blank=True, default="")
    design_only = models.BooleanField(null=True, blank=True)
    policy_revision = models.PositiveIntegerField(
        default=0,
        help_text="Incremented by exactly one per accepted policy change.",
    )
    live_policy = models.JSONField(
        default=dict,
        blank=True,
        help_text="Launch policy with accepted policy deltas applied.",
    )

    launch_idempotency_key = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Idempotency key of the launch that created this orchestration.",
    )

    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["project", "-started_at"]),
            models.Index(fields=["node", "feature_name"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["project", "launch_idempotency_key"],
                condition=~Q(launch_idempotency_key=""),
                name="unique_launch_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"{self.feature_name} [{self.status}]"

    def snapshot_dict(self) -> dict | None:
        """Return the launch policy as a dict, or None when unset or unparseable."""
        if not self.policy_snapshot:
            return None
        try:
            value = json.loads(self.policy_snapshot)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None


class ControlPlaneAction(models.Model):
    """
    Immutable log record of a requested command.

    At most one row exists per (orchestration, idempotency_key); repeated
    submissions return the existing row's id.
    """

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="control_actions",
    )
    action_type = models.CharField(
        max_length=64,
        choices=ActionType.choices,
        db_index=True,
    )
    payload = models.TextField(help_text="Raw JSON payload as submitted.")
    requested_by = models.CharField(max_length=255)
    idempotency_key = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20,
        choices=ActionStatus.choices,
        default=ActionStatus.PENDING,
        db_index=True,
    )
    queue_action = models.ForeignKey(
        "nodes.InboundAction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Dispatch queue entry created for this action.",
    )
    result = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["orchestration", "-created_at"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["orchestration", "idempotency_key"],
                name="unique_control_action_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"{self.action_type} by {self.requested_by} [{self.status}]"


class OrchestrationEvent(models.Model):
    """Append-only audit entry."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="events",
    )
    phase_number = models.CharField(max_length=16, blank=True, default="")
    event_type = models.CharField(max_length=64, db_index=True)
    source = models.CharField(max_length=64)
    summary = models.TextField()
    detail = models.TextField(blank=True, default="")
    recorded_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["recorded_at", "id"]
        indexes = [
            models.Index(fields=["orchestration", "recorded_at"]),
        ]

    def __str__(self):
        return f"{self.event_type}: {self.summary}"


class Phase(models.Model):
    """One phase of an orchestration."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="phases",
    )
    phase_number = models.CharField(max_length=16)
    status = models.CharField(max_length=50, default="planning")
    plan_path = models.CharField(max_length=1024, blank=True, default="")
    git_range = models.CharField(max_length=255, blank=True, default="")
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["orchestration", "phase_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["orchestration", "phase_number"],
                name="unique_orchestration_phase",
            ),
        ]

    def __str__(self):
        return f"Phase {self.phase_number} [{self.status}]"


class ExecutionTask(models.Model):
    """
    A unit of work inside a phase.

    Mutable only while pending; every accepted edit bumps revision by one.
    """

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="execution_tasks",
    )
    phase_number = models.CharField(max_length=16)
    task_number = models.PositiveIntegerField()
    subject = models.CharField(max_length=500)
    description = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=ExecutionTaskStatus.choices,
        default=ExecutionTaskStatus.PENDING,
    )
    model = models.CharField(max_length=64, blank=True, default="")
    depends_on = models.JSONField(
        default=list,
        blank=True,
        help_text="Task numbers in the same phase this task waits for.",
    )
    revision = models.PositiveIntegerField(default=1)
    inserted_by = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["orchestration", "phase_number", "task_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["orchestration", "phase_number", "task_number"],
                name="unique_execution_task_number",
            ),
        ]

    def __str__(self):
        return f"Task {self.phase_number}.{self.task_number}: {self.subject}"


class TaskEvent(models.Model):
    """
    Append-only task status report from the worker.

    recorded_at is a sortable ISO-8601 string; current task state is derived
    by apps.orchestration.task_events.deduplicate_task_events.
    """

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="task_events",
    )
    phase_number = models.CharField(
        max_length=16,
        null=True,
        blank=True,
        help_text="Empty for orchestrator-level tasks.",
    )
    task_id = models.CharField(max_length=255)
    subject = models.CharField(max_length=500)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=50)
    owner = models.CharField(max_length=255, blank=True, default="")
    blocked_by = models.CharField(max_length=255, blank=True, default="")
    metadata = models.TextField(blank=True, default="")
    recorded_at = models.CharField(max_length=40, db_index=True)

    class Meta:
        ordering = ["recorded_at", "id"]
        indexes = [
            models.Index(fields=["orchestration", "task_id"]),
            models.Index(fields=["orchestration", "recorded_at"]),
        ]

    def __str__(self):
        return f"{self.task_id} [{self.status}] @ {self.recorded_at}"


class Team(models.Model):
    """An agent team spawned for an orchestration phase."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="teams",
    )
    team_name = models.CharField(max_length=255)
    lead_session_id = models.CharField(max_length=255, blank=True, default="")
    local_dir_name = models.CharField(max_length=255, blank=True, default="")
    phase_number = models.CharField(max_length=16, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return self.team_name


class TeamMember(models.Model):
    """An agent participating in an orchestration phase."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="team_members",
    )
    phase_number = models.CharField(max_length=16)
    agent_name = models.CharField(max_length=255)
    agent_type = models.CharField(max_length=64, blank=True, default="")
    model = models.CharField(max_length=64, blank=True, default="")
    joined_at = models.DateTimeField(null=True, blank=True)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["orchestration", "phase_number", "agent_name"],
                name="unique_team_member_agent",
            ),
        ]

    def __str__(self):
        return f"{self.agent_name} (phase {self.phase_number})"


class Commit(models.Model):
    """A commit produced by an orchestration."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="commits",
    )
    phase_number = models.CharField(max_length=16, blank=True, default="")
    sha = models.CharField(max_length=64, db_index=True)
    short_sha = models.CharField(max_length=16, blank=True, default="")
    subject = models.CharField(max_length=500, blank=True, default="")
    recorded_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return self.short_sha or self.sha


class Plan(models.Model):
    """A phase plan document."""

    orchestration = models.ForeignKey(
        Orchestration,
        on_delete=models.PROTECT,
        related_name="plans",
    )
    phase_number = models.CharField(max_length=16)
    plan_path = models.CharField(max_length=1024)
    content = models.TextField(blank=True, default="")
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.plan_path


class SupervisorState(models.Model):
    """
    Live supervisor state written by the worker, keyed by node and feature.

    state_json carries the live model_policy / review_policy among other
    worker-owned fields.
    """

    node = models.ForeignKey(
        "nodes.Node",
        on_delete=models.CASCADE,
        related_name="supervisor_states",
    )
    feature_name = models.CharField(max_length=255, db_index=True)
    state_json = models.TextField()
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-updated_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["node", "feature_name"],
                name="unique_supervisor_state",
            ),
        ]

    def __str__(self):
        return f"{self.feature_name} @ {self.node_id}"
