"""Admin configuration for worker nodes and their dispatch queue."""

from django.contrib import admin
from django.utils import timezone

from apps.nodes.models import InboundAction, InboundActionStatus, Node


@admin.register(Node)
class NodeAdmin(admin.ModelAdmin):
    list_display = ["name", "os", "status", "online", "last_heartbeat", "registered_at"]
    list_filter = ["status", "os"]
    search_fields = ["name"]
    readonly_fields = ["registered_at", "last_heartbeat"]

    @admin.display(boolean=True, description="Online")
    def online(self, obj):
        return obj.is_online(timezone.now())


@admin.register(InboundAction)
class InboundActionAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "type",
        "node",
        "orchestration",
        "status",
        "created_at",
        "claimed_at",
        "completed_at",
    ]
    list_filter = ["status", "type"]
    search_fields = ["idempotency_key", "orchestration__feature_name"]
    readonly_fields = [
        "node",
        "orchestration",
        "type",
        "payload",
        "control_action",
        "idempotency_key",
        "created_at",
        "claimed_at",
        "completed_at",
    ]
    actions = ["requeue_selected"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("node", "orchestration")

    @admin.action(description="Return selected claimed entries to pending")
    def requeue_selected(self, request, queryset):
        count = queryset.filter(status=InboundActionStatus.CLAIMED).update(
            status=InboundActionStatus.PENDING, claimed_at=None
        )
        self.message_user(request, f"{count} queue entr(y/ies) returned to pending.")
