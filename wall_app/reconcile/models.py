"""
Record, plan and report types shared by the reconciliation pipeline.

Every artifact an operator reviews (plans, backups, apply and verification
reports) is built from these dataclasses and serialized through their
``to_dict``/``from_dict`` helpers using the camelCase keys of the JSON files.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal, Mapping, Sequence

from .errors import BatchCommitFailure
from .utils import decode_value, encode_value, ensure_json_serializable, normalize_payload

DiffKind = Literal["addition", "update", "formatting", "conflict"]
WriteAction = Literal["set", "update", "delete"]
ApplyStatus = Literal["completed", "failed"]

NAME_FIELD = "name"

_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def compute_match_key(name: object | None) -> str:
    """
    Normalize a name into the key used to equate records.

    Case-folded, punctuation stripped, whitespace collapsed and trimmed.
    """

    if name is None:
        return ""
    token = _PUNCTUATION_RE.sub("", str(name).casefold())
    return _WHITESPACE_RE.sub(" ", token).strip()


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def comparable(value: Any) -> Any:
    """Return a canonical form so equal values compare equal across types."""

    if is_empty(value):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return tuple(sorted((str(key), comparable(inner)) for key, inner in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(comparable(item) for item in value)
    return str(value)


def values_equal(left: Any, right: Any) -> bool:
    return comparable(left) == comparable(right)


def compute_checksum(payload: Mapping[str, Any]) -> str:
    """Return a stable checksum for a payload to support idempotency."""

    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def derive_record_id(parent_id: str | None, match_key: str) -> str:
    """
    Deterministic document id for a record created from the legacy source.

    Re-applying a plan therefore overwrites the record instead of creating a
    second copy.
    """

    seed = f"{parent_id or ''}:{match_key}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:20]


def _parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def image_identity(image: Any) -> Any:
    """Key used to tell two image references apart."""

    if isinstance(image, Mapping):
        for key in ("url", "path", "storagePath", "id"):
            if image.get(key):
                return (key, str(image[key]))
        return comparable(image)
    return comparable(image)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizationIssue:
    """A value the normalizer changed, cleared or could not recognise."""

    field: str
    reason: str
    original_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "reason": self.reason,
            "originalValue": ensure_json_serializable(self.original_value),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NormalizationIssue":
        return cls(
            field=str(payload.get("field") or ""),
            reason=str(payload.get("reason") or ""),
            original_value=payload.get("originalValue"),
        )


@dataclass(frozen=True)
class SourceRecord:
    """One legacy entry. Immutable once loaded."""

    fields: Mapping[str, Any]
    row_number: int | None = None
    issues: tuple[NormalizationIssue, ...] = ()

    @property
    def name(self) -> Any:
        return self.fields.get(NAME_FIELD)

    @property
    def match_key(self) -> str:
        return compute_match_key(self.name)

    def populated_fields(self) -> dict[str, Any]:
        return {key: value for key, value in self.fields.items() if not is_empty(value)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "matchKey": self.match_key,
            "fields": normalize_payload(self.fields),
            "issues": [issue.to_dict() for issue in self.issues],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SourceRecord":
        return cls(
            fields=dict(payload.get("fields") or {}),
            row_number=payload.get("rowNumber"),
            issues=tuple(NormalizationIssue.from_dict(item) for item in payload.get("issues") or ()),
        )


@dataclass(frozen=True)
class LiveRecord:
    """One document in the store. Changed only through the batch applier."""

    id: str
    parent_id: str | None
    fields: Mapping[str, Any]
    images: tuple[Any, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    object_type: str | None = None
    # Document keys outside the modelled layout (createdBy, updatedBy, ...)
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def match_key(self) -> str:
        return compute_match_key(self.fields.get(NAME_FIELD))

    @property
    def has_image(self) -> bool:
        return any(not is_empty(image) for image in self.images)

    def populated_fields(self) -> dict[str, Any]:
        return {key: value for key, value in self.fields.items() if not is_empty(value)}

    @property
    def populated_count(self) -> int:
        return len(self.populated_fields())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parentId": self.parent_id,
            "objectType": self.object_type,
            "fields": encode_value(dict(self.fields)),
            "images": encode_value(list(self.images)),
            "attributes": encode_value(dict(self.attributes)),
            "createdAt": _format_timestamp(self.created_at),
            "updatedAt": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LiveRecord":
        record_id = payload.get("id")
        if not record_id:
            raise ValueError("Live record payload is missing its id.")
        return cls(
            id=str(record_id),
            parent_id=payload.get("parentId"),
            fields=decode_value(dict(payload.get("fields") or {})),
            images=tuple(decode_value(list(payload.get("images") or ()))),
            created_at=_parse_timestamp(payload.get("createdAt")),
            updated_at=_parse_timestamp(payload.get("updatedAt")),
            object_type=payload.get("objectType"),
            attributes=decode_value(dict(payload.get("attributes") or {})),
        )


# ---------------------------------------------------------------------------
# Diff and plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiffEntry:
    """
    One field-level discrepancy between a legacy record and the live store.

    ``conflict`` entries are never applied automatically.
    """

    record_key: str
    field: str
    current_value: Any
    proposed_value: Any
    kind: DiffKind
    record_id: str | None = None

    @property
    def is_conflict(self) -> bool:
        return self.kind == "conflict"

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordKey": self.record_key,
            "recordId": self.record_id,
            "field": self.field,
            "currentValue": ensure_json_serializable(self.current_value),
            "proposedValue": ensure_json_serializable(self.proposed_value),
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DiffEntry":
        kind = payload.get("kind")
        if kind not in {"addition", "update", "formatting", "conflict"}:
            raise ValueError(f"Unknown diff kind: {kind!r}")
        return cls(
            record_key=str(payload.get("recordKey") or ""),
            field=str(payload.get("field") or ""),
            current_value=payload.get("currentValue"),
            proposed_value=payload.get("proposedValue"),
            kind=kind,
            record_id=payload.get("recordId"),
        )


@dataclass(frozen=True)
class AmbiguousMatch:
    """Source record whose match key hit several live records."""

    match_key: str
    candidate_ids: tuple[str, ...]
    row_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"matchKey": self.match_key, "candidateIds": list(self.candidate_ids), "rowNumber": self.row_number}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AmbiguousMatch":
        return cls(
            match_key=str(payload.get("matchKey") or ""),
            candidate_ids=tuple(payload.get("candidateIds") or ()),
            row_number=payload.get("rowNumber"),
        )


@dataclass
class MigrationPlan:
    """The reviewable description of everything a migration apply will do."""

    collection_name: str
    parent_id: str | None
    created_at: str
    new: list[SourceRecord] = field(default_factory=list)
    updates: list[DiffEntry] = field(default_factory=list)
    conflicts: list[DiffEntry] = field(default_factory=list)
    ambiguous: list[AmbiguousMatch] = field(default_factory=list)
    object_type: str | None = None
    statistics: dict[str, int] = field(default_factory=dict)
    issues: list[dict[str, Any]] = field(default_factory=list)

    kind = "migration"

    @property
    def deleted_count(self) -> int:
        return 0

    @property
    def plan_id(self) -> str:
        return compute_checksum(
            {
                "kind": self.kind,
                "collectionName": self.collection_name,
                "parentId": self.parent_id,
                "objectType": self.object_type,
                "new": [record.to_dict()["fields"] for record in self.new],
                "updates": [entry.to_dict() for entry in self.updates],
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "planId": self.plan_id,
            "collectionName": self.collection_name,
            "parentId": self.parent_id,
            "objectType": self.object_type,
            "createdAt": self.created_at,
            "new": [record.to_dict() for record in self.new],
            "updates": [entry.to_dict() for entry in self.updates],
            "conflicts": [entry.to_dict() for entry in self.conflicts],
            "ambiguous": [entry.to_dict() for entry in self.ambiguous],
            "statistics": dict(self.statistics),
            "issues": [dict(issue) for issue in self.issues],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MigrationPlan":
        return cls(
            collection_name=str(payload.get("collectionName") or ""),
            parent_id=payload.get("parentId"),
            object_type=payload.get("objectType"),
            created_at=str(payload.get("createdAt") or ""),
            new=[SourceRecord.from_dict(item) for item in payload.get("new") or ()],
            updates=[DiffEntry.from_dict(item) for item in payload.get("updates") or ()],
            conflicts=[DiffEntry.from_dict(item) for item in payload.get("conflicts") or ()],
            ambiguous=[AmbiguousMatch.from_dict(item) for item in payload.get("ambiguous") or ()],
            statistics=dict(payload.get("statistics") or {}),
            issues=[dict(issue) for issue in payload.get("issues") or ()],
        )


@dataclass(frozen=True)
class DuplicateGroup:
    """Two or more live records sharing a match key, with the chosen survivor."""

    match_key: str
    members: tuple[LiveRecord, ...]
    survivor_id: str
    merged_fields: Mapping[str, Any]
    merged_images: tuple[Any, ...] = ()

    @property
    def survivor(self) -> LiveRecord:
        for member in self.members:
            if member.id == self.survivor_id:
                return member
        raise ValueError(f"Survivor {self.survivor_id} is not a member of group '{self.match_key}'.")

    @property
    def deleted_ids(self) -> tuple[str, ...]:
        return tuple(member.id for member in self.members if member.id != self.survivor_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchKey": self.match_key,
            "survivorId": self.survivor_id,
            "deletedIds": list(self.deleted_ids),
            "mergedFields": encode_value(dict(self.merged_fields)),
            "mergedImages": encode_value(list(self.merged_images)),
            "members": [member.to_dict() for member in self.members],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DuplicateGroup":
        members = tuple(LiveRecord.from_dict(item) for item in payload.get("members") or ())
        survivor_id = str(payload.get("survivorId") or "")
        if survivor_id not in {member.id for member in members}:
            raise ValueError(f"Survivor {survivor_id!r} is not one of the group members.")
        return cls(
            match_key=str(payload.get("matchKey") or ""),
            members=members,
            survivor_id=survivor_id,
            merged_fields=decode_value(dict(payload.get("mergedFields") or {})),
            merged_images=tuple(decode_value(list(payload.get("mergedImages") or ()))),
        )


@dataclass
class DedupePlan:
    """Persisted set of duplicate groups awaiting a merge apply."""

    collection_name: str
    parent_id: str | None
    created_at: str
    groups: list[DuplicateGroup] = field(default_factory=list)
    object_type: str | None = None

    kind = "dedupe"

    @property
    def deleted_count(self) -> int:
        return sum(len(group.deleted_ids) for group in self.groups)

    @property
    def plan_id(self) -> str:
        return compute_checksum(
            {
                "kind": self.kind,
                "collectionName": self.collection_name,
                "parentId": self.parent_id,
                "objectType": self.object_type,
                "groups": [
                    {
                        "survivorId": group.survivor_id,
                        "deletedIds": list(group.deleted_ids),
                        "mergedFields": normalize_payload(group.merged_fields),
                        "mergedImages": ensure_json_serializable(list(group.merged_images)),
                    }
                    for group in self.groups
                ],
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "planId": self.plan_id,
            "collectionName": self.collection_name,
            "parentId": self.parent_id,
            "objectType": self.object_type,
            "createdAt": self.created_at,
            "groups": [group.to_dict() for group in self.groups],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DedupePlan":
        return cls(
            collection_name=str(payload.get("collectionName") or ""),
            parent_id=payload.get("parentId"),
            object_type=payload.get("objectType"),
            created_at=str(payload.get("createdAt") or ""),
            groups=[DuplicateGroup.from_dict(item) for item in payload.get("groups") or ()],
        )


# ---------------------------------------------------------------------------
# Backups and write instructions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Backup:
    """Point-in-time copy of a collection subset. Write-once."""

    timestamp: str
    collection_name: str
    snapshot: tuple[LiveRecord, ...]
    parent_id: str | None = None
    object_type: str | None = None

    def record_ids(self) -> set[str]:
        return {record.id for record in self.snapshot}

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "collectionName": self.collection_name,
            "parentId": self.parent_id,
            "objectType": self.object_type,
            "count": len(self.snapshot),
            "snapshot": [record.to_dict() for record in self.snapshot],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Backup":
        return cls(
            timestamp=str(payload.get("timestamp") or ""),
            collection_name=str(payload.get("collectionName") or ""),
            parent_id=payload.get("parentId"),
            object_type=payload.get("objectType"),
            snapshot=tuple(LiveRecord.from_dict(item) for item in payload.get("snapshot") or ()),
        )


@dataclass(frozen=True)
class WriteOp:
    """
    One store write.

    ``set`` replaces the whole document with ``record``, or with ``merge`` only
    writes the keys ``record`` carries and keeps the rest; ``update`` merges
    ``fields`` (and replaces ``images`` when given) into an existing document;
    ``delete`` removes the document and is a no-op when it is already gone.
    """

    action: WriteAction
    record_id: str
    fields: Mapping[str, Any] | None = None
    images: tuple[Any, ...] | None = None
    record: LiveRecord | None = None
    merge: bool = False

    @property
    def is_destructive(self) -> bool:
        return self.action in {"update", "delete"}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"action": self.action, "id": self.record_id}
        if self.merge:
            payload["merge"] = True
        if self.fields is not None:
            payload["fields"] = encode_value(dict(self.fields))
        if self.images is not None:
            payload["images"] = encode_value(list(self.images))
        return payload


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass
class ApplyReport:
    """
    How far an apply got.

    ``next_index`` is the first instruction that has not been committed; a
    retry resumes there.
    """

    plan_id: str
    collection_name: str
    total_instructions: int
    batch_size: int
    start_index: int = 0
    next_index: int = 0
    batches_committed: int = 0
    status: ApplyStatus = "completed"
    failed_batch: int | None = None
    error: str | None = None
    applied_by_action: dict[str, int] = field(default_factory=dict)
    started_at: str | None = None
    finished_at: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @property
    def applied_count(self) -> int:
        return self.next_index - self.start_index

    def raise_for_status(self) -> None:
        if not self.succeeded:
            raise BatchCommitFailure(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "planId": self.plan_id,
            "collectionName": self.collection_name,
            "status": self.status,
            "totalInstructions": self.total_instructions,
            "batchSize": self.batch_size,
            "startIndex": self.start_index,
            "nextIndex": self.next_index,
            "appliedCount": self.applied_count,
            "batchesCommitted": self.batches_committed,
            "failedBatch": self.failed_batch,
            "error": self.error,
            "appliedByAction": dict(self.applied_by_action),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ApplyReport":
        status = payload.get("status") or "completed"
        if status not in {"completed", "failed"}:
            raise ValueError(f"Unknown apply status: {status!r}")
        return cls(
            plan_id=str(payload.get("planId") or ""),
            collection_name=str(payload.get("collectionName") or ""),
            total_instructions=int(payload.get("totalInstructions") or 0),
            batch_size=int(payload.get("batchSize") or 0),
            start_index=int(payload.get("startIndex") or 0),
            next_index=int(payload.get("nextIndex") or 0),
            batches_committed=int(payload.get("batchesCommitted") or 0),
            status=status,
            failed_batch=payload.get("failedBatch"),
            error=payload.get("error"),
            applied_by_action=dict(payload.get("appliedByAction") or {}),
            started_at=payload.get("startedAt"),
            finished_at=payload.get("finishedAt"),
        )


@dataclass
class VerificationReport:
    before_count: int
    after_count: int
    expected_count: int | None
    duplicate_groups_before: int
    duplicate_groups_after: int
    population_before: dict[str, float]
    population_after: dict[str, float]
    unapplied_updates: int = 0
    divergences: list[str] = field(default_factory=list)
    plan_id: str | None = None

    @property
    def ok(self) -> bool:
        return not self.divergences

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "planId": self.plan_id,
            "beforeCount": self.before_count,
            "afterCount": self.after_count,
            "expectedCount": self.expected_count,
            "duplicateGroupsBefore": self.duplicate_groups_before,
            "duplicateGroupsAfter": self.duplicate_groups_after,
            "populationBefore": dict(self.population_before),
            "populationAfter": dict(self.population_after),
            "unappliedUpdates": self.unapplied_updates,
            "divergences": list(self.divergences),
        }


__all__ = [
    "AmbiguousMatch",
    "ApplyReport",
    "Backup",
    "DedupePlan",
    "DiffEntry",
    "DuplicateGroup",
    "LiveRecord",
    "MigrationPlan",
    "NormalizationIssue",
    "SourceRecord",
    "VerificationReport",
    "WriteOp",
    "comparable",
    "compute_checksum",
    "compute_match_key",
    "derive_record_id",
    "image_identity",
    "is_empty",
    "values_equal",
]
