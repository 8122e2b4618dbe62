"""
In-process document store.

Used by the test-suite and by dry runs against exported data. Batches are
validated in full before any record changes, so a rejected batch leaves the
collection untouched.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Sequence

from ..models import LiveRecord, WriteOp
from .base import BatchResult, RecordFilter, StoreWriteError, check_batch_size, count_actions


def _merge_into(existing: LiveRecord, incoming: LiveRecord) -> LiveRecord:
    """What ``set(..., merge=True)`` leaves behind: incoming keys win, the rest is kept."""

    fields = {**existing.fields, **incoming.fields}
    attributes = {**existing.attributes, **incoming.attributes}
    return replace(
        incoming,
        fields=fields,
        attributes=attributes,
        images=incoming.images or existing.images,
        object_type=incoming.object_type if incoming.object_type is not None else existing.object_type,
        created_at=incoming.created_at or existing.created_at,
        updated_at=incoming.updated_at or existing.updated_at,
    )


class InMemoryStore:
    """Dictionary-backed implementation of the document store contract."""

    def __init__(self, records: Iterable[LiveRecord] | None = None, *, collection: str | None = None) -> None:
        self._collections: dict[str, dict[str, LiveRecord]] = {}
        self.batches_written = 0
        if records is not None:
            if collection is None:
                raise ValueError("collection is required when seeding records")
            self.seed(collection, records)

    def seed(self, collection: str, records: Iterable[LiveRecord]) -> None:
        bucket = self._collections.setdefault(collection, {})
        for record in records:
            bucket[record.id] = copy.deepcopy(record)

    def query(self, collection: str, record_filter: RecordFilter | None = None) -> list[LiveRecord]:
        bucket = self._collections.get(collection, {})
        records = [copy.deepcopy(record) for record in bucket.values()]
        if record_filter is not None:
            records = [record for record in records if record_filter.matches(record)]
        return sorted(records, key=lambda record: record.id)

    def get(self, collection: str, record_id: str) -> LiveRecord | None:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def batch_write(self, collection: str, ops: Sequence[WriteOp]) -> BatchResult:
        check_batch_size(collection, ops)
        bucket = self._collections.setdefault(collection, {})
        staged = dict(bucket)
        now = datetime.now(timezone.utc)

        for op in ops:
            if op.action == "set":
                if op.record is None:
                    raise StoreWriteError(collection, f"set of {op.record_id} carries no record")
                record = copy.deepcopy(op.record)
                if record.id != op.record_id:
                    record = replace(record, id=op.record_id)
                existing = staged.get(op.record_id)
                if op.merge and existing is not None:
                    record = _merge_into(existing, record)
                if record.created_at is None:
                    record = replace(record, created_at=now)
                if record.updated_at is None:
                    record = replace(record, updated_at=now)
                staged[op.record_id] = record
            elif op.action == "update":
                existing = staged.get(op.record_id)
                if existing is None:
                    raise StoreWriteError(collection, f"update of missing document {op.record_id}")
                fields = dict(existing.fields)
                fields.update(copy.deepcopy(dict(op.fields or {})))
                images = tuple(copy.deepcopy(op.images)) if op.images is not None else existing.images
                if fields == dict(existing.fields) and images == tuple(existing.images):
                    continue
                staged[op.record_id] = replace(existing, fields=fields, images=images, updated_at=now)
            elif op.action == "delete":
                staged.pop(op.record_id, None)
            else:
                raise StoreWriteError(collection, f"unsupported action {op.action!r}")

        self._collections[collection] = staged
        self.batches_written += 1
        return BatchResult(collection=collection, operations=len(ops), by_action=count_actions(ops))
