"""
Monitoring signals for the control plane.

Emits structured signals at every command outcome so operators can follow
what happened to a request without reading the audit tables.

Signals:
- control_plane.action.enqueued
- control_plane.action.replayed (idempotent replay, nothing written)
- control_plane.action.rejected (with reason_code)
- control_plane.command.duration (timing metric)
- control_plane.delete.step
- control_plane.delete.completed

Tags on every signal:
- orchestration_id
- action_type
- idempotency_key
- requested_by
- node_id
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings

logger = logging.getLogger("apps.orchestration.signals")


@dataclass
class SignalTags:
    """Tags attached to every control-plane signal."""

    orchestration_id: int | None
    action_type: str = "unknown"
    idempotency_key: str = ""
    requested_by: str = ""
    node_id: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = {
            "orchestration_id": self.orchestration_id,
            "action_type": self.action_type,
            "idempotency_key": self.idempotency_key,
            "requested_by": self.requested_by,
            "node_id": self.node_id,
        }
        base.update(self.extra)
        return base


class MonitoringBackend:
    """
    Destination for control-plane signals.

    value is a duration in milliseconds for command.duration and a row count
    for delete.step; other signals carry None and put their details in extra.
    """

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        raise NotImplementedError


class LoggingBackend(MonitoringBackend):
    """Writes each signal as one INFO record carrying the tags in signal_data."""

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        data = {
            "signal": signal_name,
            "value": value,
            **tags.to_dict(),
            **(extra or {}),
        }
        logger.info(
            f"{signal_name} orchestration={tags.orchestration_id} action={tags.action_type}",
            extra={"signal_data": data},
        )


class StatsdBackend(MonitoringBackend):
    """
    Sends signals to StatsD under the configured prefix.

    command.duration is a timer per action type, delete.step counts deleted
    rows per table, action.rejected counts per reason code, and every other
    signal is a counter per action type.
    """

    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = "control_plane"):
        self.host = host
        self.port = port
        self.prefix = prefix
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import statsd

                self._client = statsd.StatsClient(self.host, self.port, prefix=self.prefix)
            except ImportError:
                logger.warning("statsd package not installed, falling back to logging")
                return None
        return self._client

    def metric_name(self, signal_name: str, tags: SignalTags, extra: dict[str, Any]) -> str:
        name = signal_name.removeprefix("control_plane.")
        if signal_name == "control_plane.action.rejected":
            return f"{name}.{extra.get('reason_code', 'unknown')}"
        if signal_name == "control_plane.delete.step":
            return f"{name}.{extra.get('table', 'unknown')}"
        return f"{name}.{tags.action_type}"

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        client = self._get_client()
        if client is None:
            LoggingBackend().emit(signal_name, tags, value, extra)
            return

        metric = self.metric_name(signal_name, tags, extra or {})
        if signal_name == "control_plane.command.duration":
            client.timing(metric, value)
        elif signal_name == "control_plane.delete.step":
            client.incr(metric, int(value or 0))
        else:
            client.incr(metric)


def get_monitoring_backend() -> MonitoringBackend:
    """Build the backend named by ORCHESTRATION_METRICS_BACKEND ("logging" or "statsd")."""
    backend_name = getattr(settings, "ORCHESTRATION_METRICS_BACKEND", "logging")

    if backend_name == "statsd":
        return StatsdBackend(
            host=getattr(settings, "STATSD_HOST", "localhost"),
            port=int(getattr(settings, "STATSD_PORT", 8125)),
            prefix=getattr(settings, "STATSD_PREFIX", "control_plane"),
        )

    return LoggingBackend()


_backend: MonitoringBackend | None = None


def _get_backend() -> MonitoringBackend:
    global _backend
    if _backend is None:
        _backend = get_monitoring_backend()
    return _backend


def emit_action_enqueued(tags: SignalTags, action_id: int) -> None:
    """Emit signal when a new control action and queue entry were written."""
    _get_backend().emit("control_plane.action.enqueued", tags, extra={"action_id": action_id})


def emit_action_replayed(tags: SignalTags, action_id: int) -> None:
    """Emit signal when an idempotency key matched an existing action."""
    _get_backend().emit("control_plane.action.replayed", tags, extra={"action_id": action_id})


def emit_action_rejected(tags: SignalTags, reason_code: str, error_message: str) -> None:
    """Emit signal when a command was refused."""
    _get_backend().emit(
        "control_plane.action.rejected",
        tags,
        extra={"reason_code": reason_code, "error_message": error_message},
    )


def emit_delete_step(orchestration_id: int, table: str, deleted_rows: int) -> None:
    """Emit signal after one staged-deletion batch."""
    _get_backend().emit(
        "control_plane.delete.step",
        SignalTags(orchestration_id=orchestration_id, action_type="delete"),
        value=deleted_rows,
        extra={"table": table},
    )


def emit_delete_completed(orchestration_id: int, deleted: bool) -> None:
    """Emit signal when staged deletion reports done."""
    _get_backend().emit(
        "control_plane.delete.completed",
        SignalTags(orchestration_id=orchestration_id, action_type="delete"),
        extra={"deleted": deleted},
    )


class CommandTimer:
    """Context manager that emits control_plane.command.duration."""

    def __init__(self, tags: SignalTags):
        self.tags = tags
        self.start_time: float = 0.0
        self.duration_ms: float = 0.0

    def __enter__(self) -> "CommandTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        _get_backend().emit(
            "control_plane.command.duration",
            self.tags,
            value=self.duration_ms,
            extra={"succeeded": exc_type is None},
        )
        return False
