"""
Policy presets applied at orchestration launch.

A policy snapshot has two sections: "review" (how strictly work is reviewed)
and "model" (which model each agent role runs on). Launch resolves a named
preset, applies caller overrides, and stores the result together with a
deterministic hash.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any

ALLOWED_MODELS = ("opus", "sonnet", "haiku", "gpt-5.3-codex", "gpt-5.3-codex-spark")
ALLOWED_ROLES = ("validator", "planner", "executor", "reviewer")

# Allowed values for the enumerated review policy fields.
REVIEW_ENUMS: dict[str, tuple[str, ...]] = {
    "enforcement": ("task_and_phase", "task_only", "phase_only"),
    "detector_scope": (
        "whole_repo_pattern_index",
        "touched_area_only",
        "architectural_allowlist_only",
    ),
    "architect_mode": ("manual_only", "manual_plus_auto", "disabled"),
    "test_integrity_profile": ("strict_baseline", "max_strict", "minimal"),
}
REVIEW_FLAGS = ("hard_block_detectors", "allow_rare_override", "require_fix_first")

PRESETS: dict[str, dict[str, dict[str, Any]]] = {
    "strict": {
        "review": {
            "enforcement": "task_and_phase",
            "detector_scope": "whole_repo_pattern_index",
            "architect_mode": "manual_plus_auto",
            "test_integrity_profile": "max_strict",
            "hard_block_detectors": True,
            "allow_rare_override": False,
            "require_fix_first": True,
        },
        "model": {
            "validator": "opus",
            "planner": "opus",
            "executor": "opus",
            "reviewer": "opus",
        },
    },
    "balanced": {
        "review": {
            "enforcement": "task_and_phase",
            "detector_scope": "whole_repo_pattern_index",
            "architect_mode": "manual_plus_auto",
            "test_integrity_profile": "strict_baseline",
            "hard_block_detectors": True,
            "allow_rare_override": True,
            "require_fix_first": True,
        },
        "model": {
            "validator": "opus",
            "planner": "opus",
            "executor": "opus",
            "reviewer": "opus",
        },
    },
    "fast": {
        "review": {
            "enforcement": "phase_only",
            "detector_scope": "touched_area_only",
            "architect_mode": "disabled",
            "test_integrity_profile": "minimal",
            "hard_block_detectors": False,
            "allow_rare_override": True,
            "require_fix_first": False,
        },
        "model": {
            "validator": "opus",
            "planner": "opus",
            "executor": "haiku",
            "reviewer": "haiku",
        },
    },
}


class UnknownPresetError(ValueError):
    """Raised when a preset name is not in PRESETS."""


def resolve_policy(preset_name: str, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Return the policy snapshot for a preset with overrides applied.

    Overrides are shallow per section: {"model": {"executor": "haiku"}}
    replaces only the executor entry of the preset's model section.
    """
    base = PRESETS.get(preset_name)
    if base is None:
        raise UnknownPresetError(
            f'Unknown preset: "{preset_name}". Valid: {", ".join(PRESETS)}'
        )

    policy = copy.deepcopy(base)
    for section in ("review", "model"):
        section_overrides = (overrides or {}).get(section)
        if section_overrides:
            policy[section].update(section_overrides)
    return policy


def _sort_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _sort_keys(value[key]) for key in sorted(value)}
    return value


def canonical_json(value: Any) -> str:
    """Serialize with recursively sorted keys and no insignificant whitespace."""
    return json.dumps(_sort_keys(value), separators=(",", ":"), ensure_ascii=False)


def hash_policy(snapshot: dict[str, Any]) -> str:
    """Return "sha256-<hex>" over the canonical JSON of a policy snapshot."""
    digest = hashlib.sha256(canonical_json(snapshot).encode("utf-8")).hexdigest()
    return f"sha256-{digest}"
