"""URL configuration for the nodes app."""

from django.urls import path

from apps.nodes.views import (
    ClaimActionView,
    CompleteActionView,
    HeartbeatView,
    PendingActionsView,
)

app_name = "nodes"

urlpatterns = [
    path("<int:node_id>/heartbeat/", HeartbeatView.as_view(), name="heartbeat"),
    path("<int:node_id>/actions/pending/", PendingActionsView.as_view(), name="pending-actions"),
    path("actions/<int:action_id>/claim/", ClaimActionView.as_view(), name="claim-action"),
    path("actions/<int:action_id>/complete/", CompleteActionView.as_view(), name="complete-action"),
]
