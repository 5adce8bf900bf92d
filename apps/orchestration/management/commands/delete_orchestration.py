"""
Management command to delete an orchestration in bounded steps.

Usage:
    # Delete synchronously, one batch per step, until done
    python manage.py delete_orchestration 42

    # Cap the number of steps (resume later by running again)
    python manage.py delete_orchestration 42 --max-steps 10

    # Hand the work to the Celery worker
    python manage.py delete_orchestration 42 --async
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.orchestration.deletion import delete_orchestration_until_done
from apps.orchestration.tasks import delete_orchestration_task


class Command(BaseCommand):
    help = "Delete an orchestration and its child rows in bounded, resumable steps."

    def add_arguments(self, parser):
        parser.add_argument("orchestration_id", type=int, help="Orchestration to delete")
        parser.add_argument(
            "--max-steps",
            type=int,
            help="Stop after this many steps (default: ORCHESTRATION_DELETE_MAX_STEPS)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            help="Rows per table per step (default: ORCHESTRATION_DELETE_BATCH_SIZE)",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the deletion as a Celery job instead of running it here",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output the final step result as JSON",
        )

    def handle(self, *args, **options):
        orchestration_id = options["orchestration_id"]

        if options["run_async"]:
            task_result = delete_orchestration_task.delay(orchestration_id)
            self.stdout.write(f"Staged deletion queued (task {task_result.id})")
            return

        max_steps = options.get("max_steps")
        if max_steps is not None and max_steps < 1:
            raise CommandError("--max-steps must be at least 1")

        result, steps = delete_orchestration_until_done(
            orchestration_id,
            max_steps=max_steps,
            batch_size=options.get("batch_size"),
        )

        if options["json"]:
            self.stdout.write(json.dumps({**result.to_dict(), "steps": steps}, indent=2))
            return

        if not result.done:
            self.stdout.write(
                self.style.WARNING(
                    f"Stopped after {steps} step(s); rows remain in {result.pending_table}. "
                    "Run again to continue."
                )
            )
        elif result.deleted:
            self.stdout.write(
                self.style.SUCCESS(f"Orchestration {orchestration_id} deleted in {steps} step(s).")
            )
        else:
            self.stdout.write(self.style.WARNING(f"Orchestration {orchestration_id} not found."))
