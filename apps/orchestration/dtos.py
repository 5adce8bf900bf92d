"""
Data Transfer Objects (DTOs) for control-plane commands and results.

validate_action() turns an action type plus raw JSON payload into one of the
command objects below. The command processor dispatches on the command class;
nothing downstream re-reads the raw payload except to store it verbatim.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar


@dataclass
class Command:
    """Base for typed control-plane commands."""

    action_type: ClassVar[str] = ""

    feature: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["action_type"] = self.action_type
        return data


@dataclass
class PauseCommand(Command):
    action_type: ClassVar[str] = "pause"

    phase: str = ""


@dataclass
class ResumeCommand(Command):
    action_type: ClassVar[str] = "resume"

    phase: str | None = None


@dataclass
class RetryCommand(Command):
    action_type: ClassVar[str] = "retry"

    phase: str = ""


@dataclass
class SetPolicyCommand(Command):
    """
    Partial policy update guarded by the orchestration's policy revision.

    review and model hold only the keys the caller wants to change.
    """

    action_type: ClassVar[str] = "orchestration_set_policy"

    target_revision: int = 0
    review: dict[str, Any] = field(default_factory=dict)
    model: dict[str, str] = field(default_factory=dict)

    def delta(self) -> dict[str, dict[str, Any]]:
        delta: dict[str, dict[str, Any]] = {}
        if self.review:
            delta["review"] = dict(self.review)
        if self.model:
            delta["model"] = dict(self.model)
        return delta


@dataclass
class SetRoleModelCommand(Command):
    action_type: ClassVar[str] = "orchestration_set_role_model"

    target_revision: int = 0
    role: str = ""
    model: str = ""

    def delta(self) -> dict[str, dict[str, Any]]:
        return {"model": {self.role: self.model}}


@dataclass
class TaskEditCommand(Command):
    """Edit of a pending task. Fields left as None are not touched."""

    action_type: ClassVar[str] = "task_edit"

    phase_number: str = ""
    task_number: int = 0
    revision: int = 0
    subject: str | None = None
    description: str | None = None
    model: str | None = None

    def changes(self) -> dict[str, str]:
        return {
            name: value
            for name, value in (
                ("subject", self.subject),
                ("description", self.description),
                ("model", self.model),
            )
            if value is not None
        }


@dataclass
class TaskInsertCommand(Command):
    action_type: ClassVar[str] = "task_insert"

    phase_number: str = ""
    after_task: int = 0
    subject: str = ""
    description: str | None = None
    model: str | None = None
    depends_on: list[int] | None = None


@dataclass
class TaskSetModelCommand(Command):
    action_type: ClassVar[str] = "task_set_model"

    phase_number: str = ""
    task_number: int = 0
    revision: int = 0
    model: str = ""


@dataclass
class LaunchResult:
    """Identifiers created (or replayed) by a launch."""

    orchestration_id: int
    action_id: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeleteStepResult:
    """
    Outcome of one staged-deletion step.

    While work remains, pending_table names the table that was being drained
    and deleted_rows counts rows removed in this step. Once done, deleted tells
    whether this call removed the orchestration row itself.
    """

    done: bool
    pending_table: str | None = None
    deleted_rows: int = 0
    deleted: bool = False
    deleted_orchestration_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.done:
            return {
                "done": False,
                "pending_table": self.pending_table,
                "deleted_rows": self.deleted_rows,
            }
        return {
            "done": True,
            "deleted": self.deleted,
            "deleted_orchestration_id": self.deleted_orchestration_id,
        }


@dataclass
class ClaimResult:
    """Outcome of a worker's attempt to claim a queue entry."""

    success: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.reason is not None:
            data["reason"] = self.reason
        return data
