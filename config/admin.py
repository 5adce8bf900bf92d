"""Custom admin site for the orchestration console."""

from datetime import timedelta

from django.contrib.admin import AdminSite
from django.db.models import Count, Q
from django.utils import timezone


class ConsoleAdminSite(AdminSite):
    site_header = "Orchestration Console"
    site_title = "Orchestration Console"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.nodes.models import InboundAction, InboundActionStatus, Node
        from apps.orchestration.dashboard import dashboard_context
        from apps.orchestration.models import ControlPlaneAction

        now = timezone.now()
        last_7d = now - timedelta(days=7)

        # --- Control plane health (7d) ---
        context = dashboard_context(since=last_7d)

        # --- Nodes ---
        nodes = list(Node.objects.order_by("name"))
        context["nodes"] = [
            {"name": node.name, "online": node.is_online(now), "last_heartbeat": node.last_heartbeat}
            for node in nodes
        ]

        # --- Queue depth ---
        context["queue"] = InboundAction.objects.aggregate(
            pending=Count("id", filter=Q(status=InboundActionStatus.PENDING)),
            claimed=Count("id", filter=Q(status=InboundActionStatus.CLAIMED)),
        )

        # --- Recent actions (last 10) ---
        context["recent_actions"] = list(
            ControlPlaneAction.objects.select_related("orchestration").order_by(
                "-created_at", "-id"
            )[:10]
        )
        return context
