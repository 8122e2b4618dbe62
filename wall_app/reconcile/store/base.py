"""
Document store contract consumed by the reconciliation engine.

The engine never talks to a database client directly; every component takes
a ``DocumentStore`` so the Firestore-backed store can be swapped for the
in-memory one in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from config.base import MAX_BATCH_SIZE

from ..models import LiveRecord, WriteOp

MAX_BATCH_OPS = MAX_BATCH_SIZE


class StoreError(Exception):
    """Base exception for document store failures."""


class StoreWriteError(StoreError):
    """Raised when a batch write is rejected. Nothing from the batch was written."""

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(f"Batch write to '{collection}' rejected: {message}")
        self.collection = collection


@dataclass(frozen=True)
class RecordFilter:
    """Subset of a collection the engine works on."""

    parent_id: str | None = None
    object_type: str | None = None

    def matches(self, record: LiveRecord) -> bool:
        if self.parent_id is not None and record.parent_id != self.parent_id:
            return False
        if self.object_type is not None and record.object_type != self.object_type:
            return False
        return True

    def as_dict(self) -> dict[str, Any]:
        return {"parentId": self.parent_id, "objectType": self.object_type}


@dataclass(frozen=True)
class BatchResult:
    collection: str
    operations: int
    by_action: Mapping[str, int]


@runtime_checkable
class DocumentStore(Protocol):
    def query(self, collection: str, record_filter: RecordFilter | None = None) -> list[LiveRecord]:
        ...

    def get(self, collection: str, record_id: str) -> LiveRecord | None:
        ...

    def batch_write(self, collection: str, ops: Sequence[WriteOp]) -> BatchResult:
        """Apply every op or none of them. At most ``MAX_BATCH_OPS`` ops per call."""
        ...


def check_batch_size(collection: str, ops: Sequence[WriteOp]) -> None:
    if len(ops) > MAX_BATCH_OPS:
        raise StoreWriteError(collection, f"{len(ops)} operations exceed the limit of {MAX_BATCH_OPS} per batch")


def count_actions(ops: Sequence[WriteOp]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for op in ops:
        counts[op.action] = counts.get(op.action, 0) + 1
    return counts
