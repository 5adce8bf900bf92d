"""URL configuration for the orchestration app."""

from django.urls import path

from apps.orchestration.views import (
    ControlActionsView,
    DeleteOrchestrationView,
    LaunchView,
    OrchestrationDetailView,
    PolicyView,
    StartView,
)

app_name = "orchestration"

urlpatterns = [
    path("launch/", LaunchView.as_view(), name="launch"),
    path("<int:orchestration_id>/", OrchestrationDetailView.as_view(), name="detail"),
    path("<int:orchestration_id>/start/", StartView.as_view(), name="start"),
    path("<int:orchestration_id>/actions/", ControlActionsView.as_view(), name="actions"),
    # Policy reads
    path(
        "<int:orchestration_id>/policy/snapshot/",
        PolicyView.as_view(),
        {"kind": "snapshot"},
        name="policy-snapshot",
    ),
    path(
        "<int:orchestration_id>/policy/active/",
        PolicyView.as_view(),
        {"kind": "active"},
        name="policy-active",
    ),
    # Staged deletion
    path("<int:orchestration_id>/delete/", DeleteOrchestrationView.as_view(), name="delete"),
    path(
        "<int:orchestration_id>/delete/async/",
        DeleteOrchestrationView.as_view(),
        {"mode": "async"},
        name="delete-async",
    ),
]
