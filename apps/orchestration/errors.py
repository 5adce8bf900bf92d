"""
Exceptions raised by control-plane commands.

Every error carries a reason code from apps.orchestration.reason_codes so the
HTTP layer and the dashboard can classify failures without parsing messages.
A raised error always means nothing was persisted.
"""

from apps.orchestration import reason_codes


class ControlPlaneError(Exception):
    """Base class for control-plane command failures."""

    reason_code = reason_codes.VALIDATION_INVALID_PAYLOAD

    def __init__(self, message: str, reason_code: str | None = None):
        super().__init__(message)
        self.message = message
        if reason_code is not None:
            self.reason_code = reason_code

    def __str__(self):
        return self.message


class InvalidActionError(ControlPlaneError, ValueError):
    """Unknown action type, malformed payload, missing field or bad enum value."""

    reason_code = reason_codes.VALIDATION_INVALID_PAYLOAD


class RevisionConflictError(ControlPlaneError):
    """Stale policy or task revision, or a task that is no longer pending."""

    reason_code = reason_codes.VALIDATION_REVISION_CONFLICT


class ReferenceNotFoundError(ControlPlaneError):
    """A referenced entity does not exist or belongs elsewhere."""

    reason_code = reason_codes.VALIDATION_ENTITY_NOT_FOUND


class NodeOfflineError(ReferenceNotFoundError):
    """The target node has not sent a heartbeat within the freshness window."""

    reason_code = reason_codes.VALIDATION_NODE_OFFLINE
