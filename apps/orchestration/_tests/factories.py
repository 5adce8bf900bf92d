"""Model builders shared by the control-plane tests."""

from datetime import timedelta

from django.utils import timezone

from apps.nodes.models import Node
from apps.orchestration.models import ExecutionTask, Orchestration
from apps.projects.models import Design, Project, Ticket


def make_node(name="node-1", online=True, **kwargs):
    if online:
        kwargs.setdefault("last_heartbeat", timezone.now())
    else:
        kwargs.setdefault("last_heartbeat", timezone.now() - timedelta(minutes=10))
    return Node.objects.create(name=name, os="linux", **kwargs)


def make_project(name="console", repo_path="/srv/console"):
    return Project.objects.create(name=name, repo_path=repo_path)


def make_design(project, title="Auth rework", phase_count=3):
    return Design.objects.create(project=project, title=title, phase_count=phase_count)


def make_ticket(project, title="Add login"):
    return Ticket.objects.create(project=project, title=title)


def make_orchestration(node=None, project=None, feature="auth-rework", **kwargs):
    if node is None:
        node = make_node(name=f"node-{feature}")
    return Orchestration.objects.create(
        node=node,
        project=project,
        feature_name=feature,
        branch=f"tina/{feature}",
        total_phases=kwargs.pop("total_phases", 3),
        status=kwargs.pop("status", "executing"),
        **kwargs,
    )


def make_task(orchestration, phase_number="1", task_number=1, **kwargs):
    kwargs.setdefault("subject", f"Task {task_number}")
    return ExecutionTask.objects.create(
        orchestration=orchestration,
        phase_number=phase_number,
        task_number=task_number,
        **kwargs,
    )
