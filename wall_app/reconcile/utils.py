"""
Reconciliation utilities for artifact locations and JSON-safe payloads.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

DEFAULT_ARTIFACT_SUBDIR = "reconcile_artifacts"


def _normalize_artifact_dir(configured_path: str | None, instance_path: str, *, default_subdir: str) -> Path:
    if not configured_path:
        return Path(instance_path) / default_subdir

    candidate = Path(configured_path)
    if candidate.is_absolute():
        return candidate

    return Path(instance_path) / candidate


def resolve_artifact_directory(app) -> Path:
    """
    Determine and create (if necessary) the directory holding plans, backups and reports.
    """

    artifact_dir = _normalize_artifact_dir(
        app.config.get("RECONCILE_ARTIFACT_DIR"),
        app.instance_path,
        default_subdir=DEFAULT_ARTIFACT_SUBDIR,
    )
    artifact_dir.mkdir(parents=True, exist_ok=True)
    return artifact_dir


def ensure_json_serializable(value: Any) -> Any:
    """
    Best-effort conversion of values to JSON-serializable representations.
    """

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): ensure_json_serializable(inner) for key, inner in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [ensure_json_serializable(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return str(value)


def normalize_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a shallow copy of ``payload`` with JSON-serializable values.
    """

    if not payload:
        return {}
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        normalized[str(key)] = ensure_json_serializable(value)
    return normalized


TYPE_TAG = "__type__"


def encode_value(value: Any) -> Any:
    """
    JSON form of a stored value that keeps timestamps and dates apart from text.

    ``decode_value`` reverses it, so a snapshot written to disk and read back
    holds values of the same types as the store returned.
    """

    if isinstance(value, datetime):
        return {TYPE_TAG: "timestamp", "value": value.isoformat()}
    if isinstance(value, date):
        return {TYPE_TAG: "date", "value": value.isoformat()}
    if isinstance(value, Mapping):
        return {str(key): encode_value(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return ensure_json_serializable(value)


def decode_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        if set(value) == {TYPE_TAG, "value"}:
            kind, raw = value[TYPE_TAG], value["value"]
            if kind == "timestamp":
                return datetime.fromisoformat(str(raw))
            if kind == "date":
                return date.fromisoformat(str(raw))
        return {str(key): decode_value(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value
