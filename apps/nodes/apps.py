"""Django app configuration for the nodes app."""

from django.apps import AppConfig


class NodesConfig(AppConfig):
    """Configuration for the worker Nodes app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.nodes"
    verbose_name = "Worker Nodes"
