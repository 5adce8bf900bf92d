"""Celery bootstrap for the orchestration console.

The worker runs control-plane jobs that must not block a request, currently the
self-rescheduling staged deletion of orchestrations:

    celery -A config worker -l info

Staged deletion is routed to ORCHESTRATION_DELETE_QUEUE (default "celery") so
a deployment can give long deletions their own worker:

    celery -A config worker -Q maintenance -l info

Broker and result backend come from the CELERY_* Django settings.
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("orchestration-console")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.conf.task_routes = {
    "apps.orchestration.tasks.delete_orchestration_task": {
        "queue": os.environ.get("ORCHESTRATION_DELETE_QUEUE", "celery"),
    },
}
app.autodiscover_tasks()
