"""
Failure reason codes for control-plane actions.

Codes are grouped by the stage that produced them:

- validation_*: rejected before anything was written
- dispatch_*: the worker could not run the queued action
- execution_*: the worker ran the action and it failed
"""

from __future__ import annotations

import json
from typing import Any

# Validation
VALIDATION_MISSING_FIELD = "validation_missing_field"
VALIDATION_INVALID_PAYLOAD = "validation_invalid_payload"
VALIDATION_UNKNOWN_ACTION = "validation_unknown_action"
VALIDATION_REVISION_CONFLICT = "validation_revision_conflict"
VALIDATION_INVALID_STATE = "validation_invalid_state"
VALIDATION_ENTITY_NOT_FOUND = "validation_entity_not_found"
VALIDATION_NODE_OFFLINE = "validation_node_offline"

# Dispatch
DISPATCH_CLI_EXIT_NONZERO = "dispatch_cli_exit_nonzero"
DISPATCH_CLI_SPAWN_FAILED = "dispatch_cli_spawn_failed"
DISPATCH_PAYLOAD_INVALID = "dispatch_payload_invalid"
DISPATCH_UNKNOWN_TYPE = "dispatch_unknown_type"

# Execution
EXECUTION_INIT_FAILED = "execution_init_failed"
EXECUTION_ADVANCE_FAILED = "execution_advance_failed"
EXECUTION_POLICY_WRITE_FAILED = "execution_policy_write_failed"
EXECUTION_TASK_MUTATION_FAILED = "execution_task_mutation_failed"

ALL_CODES = (
    VALIDATION_MISSING_FIELD,
    VALIDATION_INVALID_PAYLOAD,
    VALIDATION_UNKNOWN_ACTION,
    VALIDATION_REVISION_CONFLICT,
    VALIDATION_INVALID_STATE,
    VALIDATION_ENTITY_NOT_FOUND,
    VALIDATION_NODE_OFFLINE,
    DISPATCH_CLI_EXIT_NONZERO,
    DISPATCH_CLI_SPAWN_FAILED,
    DISPATCH_PAYLOAD_INVALID,
    DISPATCH_UNKNOWN_TYPE,
    EXECUTION_INIT_FAILED,
    EXECUTION_ADVANCE_FAILED,
    EXECUTION_POLICY_WRITE_FAILED,
    EXECUTION_TASK_MUTATION_FAILED,
)

CATEGORIES = ("validation", "dispatch", "execution")

# Error codes reported by the worker's action dispatcher.
_DISPATCH_ERROR_CODES = {
    "payload_missing_field": DISPATCH_PAYLOAD_INVALID,
    "payload_invalid": DISPATCH_PAYLOAD_INVALID,
    "unknown_action_type": DISPATCH_UNKNOWN_TYPE,
    "cli_exit_non_zero": DISPATCH_CLI_EXIT_NONZERO,
    "cli_spawn_failed": DISPATCH_CLI_SPAWN_FAILED,
}


def category_for_code(code: str) -> str:
    """Return "validation", "dispatch" or "execution" for a reason code."""
    if code.startswith("validation_"):
        return "validation"
    if code.startswith("dispatch_"):
        return "dispatch"
    return "execution"


def from_dispatch_error_code(error_code: str) -> str:
    """Map a worker dispatcher error code to a reason code."""
    return _DISPATCH_ERROR_CODES.get(error_code, DISPATCH_PAYLOAD_INVALID)


def extract_reason_code(result_json: str | None) -> str | None:
    """
    Derive a reason code from an action's stored result.

    Worker results look like {"success": bool, "error_code": str, "message": str}.
    Returns None for successful results. Results that cannot be parsed
    (including an empty string) are classified as dispatch_payload_invalid.
    """
    try:
        parsed: Any = json.loads(result_json)
    except (TypeError, json.JSONDecodeError):
        return DISPATCH_PAYLOAD_INVALID
    if not isinstance(parsed, dict):
        return DISPATCH_PAYLOAD_INVALID
    if parsed.get("success"):
        return None
    error_code = parsed.get("error_code")
    if isinstance(error_code, str) and error_code:
        return from_dispatch_error_code(error_code)
    return DISPATCH_CLI_EXIT_NONZERO
