"""
Reading and writing of JSON artifacts.

Plans, backups and reports are written once. A second write to the same path
is refused rather than silently replacing what an operator may have reviewed.
"""

from __future__ import annotations

import json
import os
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Union

from .errors import ArtifactError
from .models import ApplyReport, DedupePlan, MigrationPlan
from .utils import ensure_json_serializable

Plan = Union[MigrationPlan, DedupePlan]

_READ_ONLY = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH


def timestamp_token(value: datetime | str | None = None) -> str:
    """Filesystem-safe, lexically sortable token for a timestamp."""

    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return "".join(char if char.isalnum() else "-" for char in value)


def artifact_path(directory: Path, prefix: str, token: str | None = None, *, suffix: str = ".json") -> Path:
    return Path(directory) / f"{prefix}-{token or timestamp_token()}{suffix}"


def write_artifact(path: Path | str, payload: Mapping[str, Any], *, read_only: bool = False) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x", encoding="utf-8") as handle:
            json.dump(ensure_json_serializable(payload), handle, indent=2)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
    except FileExistsError as exc:
        raise ArtifactError(f"Artifact {path} already exists; artifacts are never overwritten.") from exc
    except OSError as exc:
        raise ArtifactError(f"Unable to write artifact {path}: {exc}") from exc
    if read_only:
        os.chmod(path, _READ_ONLY)
    return path


def read_artifact(path: Path | str) -> dict[str, Any]:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ArtifactError(f"Unable to read artifact {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ArtifactError(f"Artifact {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ArtifactError(f"Artifact {path} must contain a JSON object.")
    return payload


def plan_from_payload(payload: Mapping[str, Any]) -> Plan:
    kind = payload.get("kind")
    try:
        if kind == MigrationPlan.kind:
            return MigrationPlan.from_dict(payload)
        if kind == DedupePlan.kind:
            return DedupePlan.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise ArtifactError(f"Plan artifact is malformed: {exc}") from exc
    raise ArtifactError(f"Unknown plan kind: {kind!r}")


def load_plan(path: Path | str) -> Plan:
    plan = plan_from_payload(read_artifact(path))
    if not plan.collection_name:
        raise ArtifactError(f"Plan {path} does not name a collection.")
    return plan


def load_report(path: Path | str) -> ApplyReport:
    try:
        return ApplyReport.from_dict(read_artifact(path))
    except (TypeError, ValueError) as exc:
        raise ArtifactError(f"Apply report {path} is malformed: {exc}") from exc


__all__ = [
    "Plan",
    "artifact_path",
    "load_plan",
    "load_report",
    "plan_from_payload",
    "read_artifact",
    "timestamp_token",
    "write_artifact",
]
