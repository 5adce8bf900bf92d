"""
Management command to submit a control action from the shell.

Usage:
    python manage.py enqueue_action 42 pause --payload '{"feature": "auth", "phase": "1"}'

    # Target a specific node (default: the orchestration's node)
    python manage.py enqueue_action 42 resume --payload '{"feature": "auth"}' --node 3

    # Retry-safe: reuse the same key and the existing action id comes back
    python manage.py enqueue_action 42 retry --payload '...' --idempotency-key retry-42-1
"""

import uuid

from django.core.management.base import BaseCommand, CommandError

from apps.orchestration.control_plane import enqueue_control_action
from apps.orchestration.errors import ControlPlaneError
from apps.orchestration.models import Orchestration


class Command(BaseCommand):
    help = "Validate and enqueue a control action against an orchestration."

    def add_arguments(self, parser):
        parser.add_argument("orchestration_id", type=int)
        parser.add_argument("action_type", type=str)
        parser.add_argument(
            "--payload",
            type=str,
            default="{}",
            help="JSON payload string",
        )
        parser.add_argument("--node", type=int, help="Target node id")
        parser.add_argument(
            "--requested-by",
            type=str,
            default="cli",
            help="Requester recorded on the action (default: cli)",
        )
        parser.add_argument(
            "--idempotency-key",
            type=str,
            help="Idempotency key (default: random)",
        )

    def handle(self, *args, **options):
        orchestration_id = options["orchestration_id"]

        node_id = options.get("node")
        if node_id is None:
            node_id = (
                Orchestration.objects.filter(pk=orchestration_id)
                .values_list("node_id", flat=True)
                .first()
            )
            if node_id is None:
                raise CommandError("Orchestration not found")

        try:
            action_id = enqueue_control_action(
                orchestration_id,
                node_id,
                options["action_type"],
                options["payload"],
                options["requested_by"],
                options.get("idempotency_key") or f"cli-{uuid.uuid4()}",
            )
        except ControlPlaneError as exc:
            raise CommandError(f"{exc.message} [{exc.reason_code}]") from exc

        self.stdout.write(self.style.SUCCESS(f"Enqueued control action {action_id}"))
