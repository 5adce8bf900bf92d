"""
Validation of control-plane action payloads.

validate_action() is the single entry point: it checks the action type against
the runtime set, parses the JSON payload and hands it to one decoder per type.
Required fields are checked in a fixed order so the first missing field is
always the one reported.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from apps.orchestration import reason_codes
from apps.orchestration.dtos import (
    Command,
    PauseCommand,
    ResumeCommand,
    RetryCommand,
    SetPolicyCommand,
    SetRoleModelCommand,
    TaskEditCommand,
    TaskInsertCommand,
    TaskSetModelCommand,
)
from apps.orchestration.errors import InvalidActionError
from apps.orchestration.presets import ALLOWED_MODELS, ALLOWED_ROLES, REVIEW_ENUMS, REVIEW_FLAGS

# Action types accepted by enqueue_control_action. start_orchestration is
# produced only by start/launch.
RUNTIME_ACTION_TYPES = (
    "pause",
    "resume",
    "retry",
    "orchestration_set_policy",
    "orchestration_set_role_model",
    "task_edit",
    "task_insert",
    "task_set_model",
)

INVALID_JSON_MESSAGE = "Invalid payload: must be valid JSON"


def _missing(action_type: str, field_name: str, kind: str) -> InvalidActionError:
    return InvalidActionError(
        f'Payload for "{action_type}" requires "{field_name}" ({kind})',
        reason_code=reason_codes.VALIDATION_MISSING_FIELD,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_string(parsed: dict, action_type: str, field_name: str) -> str:
    value = parsed.get(field_name)
    if not isinstance(value, str) or not value:
        raise _missing(action_type, field_name, "string")
    return value


def _require_number(parsed: dict, action_type: str, field_name: str) -> int:
    value = parsed.get(field_name)
    if not _is_number(value):
        raise _missing(action_type, field_name, "number")
    return value


def _optional_string(parsed: dict, field_name: str) -> str | None:
    value = parsed.get(field_name)
    return value if isinstance(value, str) else None


def validate_model_name(model: Any) -> str:
    """Check a model name against ALLOWED_MODELS."""
    if not isinstance(model, str) or model not in ALLOWED_MODELS:
        raise InvalidActionError(
            f'Invalid model: "{model}". Allowed: {", ".join(ALLOWED_MODELS)}'
        )
    return model


def validate_role(role: Any) -> str:
    """Check an agent role against ALLOWED_ROLES."""
    if not isinstance(role, str) or role not in ALLOWED_ROLES:
        raise InvalidActionError(f'Invalid role: "{role}". Allowed: {", ".join(ALLOWED_ROLES)}')
    return role


def parse_payload(raw_payload: str) -> dict[str, Any]:
    """Parse a raw payload into a JSON object."""
    try:
        parsed = json.loads(raw_payload)
    except (TypeError, json.JSONDecodeError):
        raise InvalidActionError(INVALID_JSON_MESSAGE) from None
    if not isinstance(parsed, dict):
        raise InvalidActionError(INVALID_JSON_MESSAGE)
    return parsed


def _decode_pause(parsed: dict) -> PauseCommand:
    feature = _require_string(parsed, "pause", "feature")
    phase = _require_string(parsed, "pause", "phase")
    return PauseCommand(feature=feature, phase=phase)


def _decode_resume(parsed: dict) -> ResumeCommand:
    feature = _require_string(parsed, "resume", "feature")
    return ResumeCommand(feature=feature, phase=_optional_string(parsed, "phase"))


def _decode_retry(parsed: dict) -> RetryCommand:
    feature = _require_string(parsed, "retry", "feature")
    phase = _require_string(parsed, "retry", "phase")
    return RetryCommand(feature=feature, phase=phase)


def _decode_review_delta(review: Any) -> dict[str, Any]:
    if review is None:
        return {}
    if not isinstance(review, dict):
        raise InvalidActionError('Invalid payload: "review" must be an object')
    for key, value in review.items():
        if key in REVIEW_ENUMS:
            allowed = REVIEW_ENUMS[key]
            if value not in allowed:
                raise InvalidActionError(
                    f'Invalid value for review "{key}": "{value}". Allowed: {", ".join(allowed)}'
                )
        elif key in REVIEW_FLAGS:
            if not isinstance(value, bool):
                raise InvalidActionError(f'Invalid value for review "{key}": must be a boolean')
        else:
            raise InvalidActionError(f'Unknown review field: "{key}"')
    return dict(review)


def _decode_model_delta(model: Any) -> dict[str, str]:
    if model is None:
        return {}
    if not isinstance(model, dict):
        raise InvalidActionError('Invalid payload: "model" must be an object')
    for role, value in model.items():
        validate_role(role)
        if not isinstance(value, str) or value not in ALLOWED_MODELS:
            raise InvalidActionError(
                f'Invalid model for "{role}": "{value}". Allowed: {", ".join(ALLOWED_MODELS)}'
            )
    return dict(model)


def _decode_set_policy(parsed: dict) -> SetPolicyCommand:
    action_type = SetPolicyCommand.action_type
    feature = _require_string(parsed, action_type, "feature")
    target_revision = _require_number(parsed, action_type, "targetRevision")
    return SetPolicyCommand(
        feature=feature,
        target_revision=target_revision,
        review=_decode_review_delta(parsed.get("review")),
        model=_decode_model_delta(parsed.get("model")),
    )


def _decode_set_role_model(parsed: dict) -> SetRoleModelCommand:
    action_type = SetRoleModelCommand.action_type
    feature = _require_string(parsed, action_type, "feature")
    target_revision = _require_number(parsed, action_type, "targetRevision")
    role = validate_role(parsed.get("role"))
    model = validate_model_name(parsed.get("model"))
    return SetRoleModelCommand(
        feature=feature,
        target_revision=target_revision,
        role=role,
        model=model,
    )


def _decode_task_edit(parsed: dict) -> TaskEditCommand:
    action_type = TaskEditCommand.action_type
    feature = _require_string(parsed, action_type, "feature")
    phase_number = _require_string(parsed, action_type, "phaseNumber")
    task_number = _require_number(parsed, action_type, "taskNumber")
    revision = _require_number(parsed, action_type, "revision")

    subject = _optional_string(parsed, "subject")
    description = _optional_string(parsed, "description")
    model = _optional_string(parsed, "model")
    if subject is None and description is None and model is None:
        raise InvalidActionError(
            'Payload for "task_edit" requires at least one edit field: '
            '"subject", "description", or "model"',
            reason_code=reason_codes.VALIDATION_MISSING_FIELD,
        )
    if model is not None:
        validate_model_name(model)

    return TaskEditCommand(
        feature=feature,
        phase_number=phase_number,
        task_number=task_number,
        revision=revision,
        subject=subject,
        description=description,
        model=model,
    )


def _decode_task_insert(parsed: dict) -> TaskInsertCommand:
    action_type = TaskInsertCommand.action_type
    feature = _require_string(parsed, action_type, "feature")
    phase_number = _require_string(parsed, action_type, "phaseNumber")
    after_task = _require_number(parsed, action_type, "afterTask")
    subject = _require_string(parsed, action_type, "subject")

    model = parsed.get("model")
    if model is not None:
        validate_model_name(model)

    depends_on = parsed.get("dependsOn")
    if depends_on is not None:
        if not isinstance(depends_on, list):
            raise InvalidActionError(
                'Payload for "task_insert" requires "dependsOn" to be an array'
            )
        if not all(_is_number(dep) for dep in depends_on):
            raise InvalidActionError(
                'Payload for "task_insert" requires "dependsOn" to contain task numbers'
            )

    return TaskInsertCommand(
        feature=feature,
        phase_number=phase_number,
        after_task=after_task,
        subject=subject,
        description=_optional_string(parsed, "description"),
        model=model,
        depends_on=depends_on,
    )


def _decode_task_set_model(parsed: dict) -> TaskSetModelCommand:
    action_type = TaskSetModelCommand.action_type
    feature = _require_string(parsed, action_type, "feature")
    phase_number = _require_string(parsed, action_type, "phaseNumber")
    task_number = _require_number(parsed, action_type, "taskNumber")
    revision = _require_number(parsed, action_type, "revision")
    model = validate_model_name(_require_string(parsed, action_type, "model"))
    return TaskSetModelCommand(
        feature=feature,
        phase_number=phase_number,
        task_number=task_number,
        revision=revision,
        model=model,
    )


_DECODERS: dict[str, Callable[[dict], Command]] = {
    "pause": _decode_pause,
    "resume": _decode_resume,
    "retry": _decode_retry,
    "orchestration_set_policy": _decode_set_policy,
    "orchestration_set_role_model": _decode_set_role_model,
    "task_edit": _decode_task_edit,
    "task_insert": _decode_task_insert,
    "task_set_model": _decode_task_set_model,
}


def validate_action(action_type: str, raw_payload: str) -> Command:
    """
    Validate an enqueue request and return the typed command.

    Raises:
        InvalidActionError: unknown action type, malformed payload, missing
            required field or a value outside its closed set.
    """
    decoder = _DECODERS.get(action_type)
    if decoder is None:
        raise InvalidActionError(
            f'Invalid actionType: "{action_type}". Allowed: {", ".join(RUNTIME_ACTION_TYPES)}',
            reason_code=reason_codes.VALIDATION_UNKNOWN_ACTION,
        )
    return decoder(parse_payload(raw_payload))
