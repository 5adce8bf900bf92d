"""Admin configuration for orchestration models."""

from django.contrib import admin
from django.db import models as db_models
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.orchestration.deletion import delete_orchestration, delete_orchestration_until_done
from apps.orchestration.models import (
    ControlPlaneAction,
    ExecutionTask,
    Orchestration,
    OrchestrationEvent,
    Phase,
    SupervisorState,
    TaskEvent,
)
from apps.orchestration.reason_codes import extract_reason_code
from apps.orchestration.tasks import delete_orchestration_task


class PhaseInline(admin.TabularInline):
    model = Phase
    extra = 0
    fields = ["phase_number", "status", "plan_path", "git_range", "started_at", "completed_at"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class ControlPlaneActionInline(admin.TabularInline):
    """Read-only command log within an orchestration."""

    model = ControlPlaneAction
    extra = 0
    fields = ["action_type", "requested_by", "status", "idempotency_key", "created_at"]
    readonly_fields = fields
    ordering = ["-created_at", "-id"]
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Orchestration)
class OrchestrationAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for Orchestration model."""

    list_display = [
        "feature_name",
        "project",
        "node",
        "status",
        "current_phase",
        "total_phases",
        "policy_revision",
        "started_at",
    ]
    list_filter = ["status", "preset_origin", "design_only"]
    search_fields = ["feature_name", "branch"]
    readonly_fields = [
        "policy_snapshot",
        "policy_snapshot_hash",
        "preset_origin",
        "policy_revision",
        "launch_idempotency_key",
        "created_at",
        "updated_at",
    ]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}
    inlines = [PhaseInline, ControlPlaneActionInline]
    actions = ["delete_staged_selected"]
    change_actions = ["run_delete_step", "delete_staged"]

    fieldsets = [
        (
            "Identification",
            {"fields": ["feature_name", "project", "design", "node", "branch", "design_doc_path"]},
        ),
        (
            "State",
            {"fields": ["status", "current_phase", "total_phases", "started_at", "completed_at"]},
        ),
        (
            "Policy",
            {
                "fields": [
                    "preset_origin",
                    "design_only",
                    "policy_revision",
                    "live_policy",
                    "policy_snapshot",
                    "policy_snapshot_hash",
                ]
            },
        ),
        (
            "Timestamps",
            {
                "fields": ["launch_idempotency_key", "created_at", "updated_at"],
                "classes": ["collapse"],
            },
        ),
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("project", "node")

    def has_delete_permission(self, request, obj=None):
        # Child rows are PROTECTed; deletion goes through the staged actions.
        return False

    @admin.action(description="Delete selected (staged, in background)")
    def delete_staged_selected(self, request, queryset):
        count = 0
        for orchestration in queryset:
            delete_orchestration_task.delay(orchestration.pk)
            count += 1
        self.message_user(request, f"Staged deletion queued for {count} orchestration(s).")

    @object_action(label="Run Delete Step", description="Delete one batch of child rows")
    def run_delete_step(self, request, obj):
        result = delete_orchestration(obj.pk)
        if result.done:
            self.message_user(request, f"Orchestration '{obj.feature_name}' deleted.")
        else:
            self.message_user(
                request,
                f"Deleted {result.deleted_rows} row(s) from {result.pending_table}; "
                f"run again to continue.",
            )

    @object_action(label="Delete (staged)", description="Run staged deletion to completion")
    def delete_staged(self, request, obj):
        result, steps = delete_orchestration_until_done(obj.pk)
        if result.done:
            self.message_user(
                request, f"Orchestration '{obj.feature_name}' deleted in {steps} step(s)."
            )
        else:
            self.message_user(
                request,
                f"Stopped after {steps} step(s) with rows left in {result.pending_table}.",
                level="warning",
            )


@admin.register(ControlPlaneAction)
class ControlPlaneActionAdmin(admin.ModelAdmin):
    """Admin for the control-plane command log."""

    list_display = [
        "id",
        "orchestration",
        "action_type",
        "requested_by",
        "status",
        "reason_code",
        "created_at",
        "completed_at",
    ]
    list_filter = ["action_type", "status"]
    search_fields = ["idempotency_key", "requested_by", "orchestration__feature_name"]
    readonly_fields = [
        "orchestration",
        "action_type",
        "payload",
        "requested_by",
        "idempotency_key",
        "status",
        "queue_action",
        "result",
        "created_at",
        "completed_at",
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("orchestration")

    def has_add_permission(self, request):
        return False

    @admin.display(description="Reason")
    def reason_code(self, obj):
        if obj.status != "failed":
            return "-"
        return extract_reason_code(obj.result) if obj.result else "unknown"


@admin.register(OrchestrationEvent)
class OrchestrationEventAdmin(admin.ModelAdmin):
    list_display = ["orchestration", "event_type", "source", "summary", "recorded_at"]
    list_filter = ["event_type", "source"]
    search_fields = ["summary", "orchestration__feature_name"]
    readonly_fields = ["recorded_at"]


@admin.register(ExecutionTask)
class ExecutionTaskAdmin(admin.ModelAdmin):
    list_display = [
        "orchestration",
        "phase_number",
        "task_number",
        "subject",
        "status",
        "model",
        "revision",
    ]
    list_filter = ["status", "model"]
    search_fields = ["subject", "orchestration__feature_name"]
    readonly_fields = ["revision", "inserted_by", "created_at", "updated_at"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}


@admin.register(TaskEvent)
class TaskEventAdmin(admin.ModelAdmin):
    list_display = ["orchestration", "phase_number", "task_id", "status", "recorded_at"]
    list_filter = ["status"]
    search_fields = ["task_id", "subject"]


@admin.register(SupervisorState)
class SupervisorStateAdmin(admin.ModelAdmin):
    list_display = ["feature_name", "node", "updated_at"]
    search_fields = ["feature_name"]
