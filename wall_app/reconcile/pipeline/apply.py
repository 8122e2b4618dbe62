"""
Batched application of reviewed plans against the document store.

Instructions are committed in order, in batches of at most ``MAX_BATCH_OPS``.
Each batch is atomic; the run as a whole is not. When a batch is rejected the
run stops and the report's ``next_index`` names the first instruction that did
not land, so a retry of the same plan resumes there.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Sequence, Union

from ..errors import MissingBackupError, ReconcileError, ValueConflictError
from ..metrics import record_batch, record_instructions
from ..models import (
    ApplyReport,
    Backup,
    DedupePlan,
    DuplicateGroup,
    LiveRecord,
    MigrationPlan,
    WriteOp,
    compute_checksum,
    derive_record_id,
    image_identity,
    values_equal,
)
from ..store import MAX_BATCH_OPS, DocumentStore, StoreError
from ..store.base import count_actions

logger = logging.getLogger(__name__)

ApplyTarget = Union[MigrationPlan, DedupePlan, Sequence[DuplicateGroup]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _plan_timestamp(plan: MigrationPlan) -> datetime | None:
    if not plan.created_at:
        return None
    try:
        stamp = datetime.fromisoformat(plan.created_at)
    except ValueError:
        return None
    return stamp if stamp.tzinfo is not None else stamp.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Instruction building
# ---------------------------------------------------------------------------


def build_plan_instructions(plan: MigrationPlan) -> list[WriteOp]:
    """
    Creates first, then one update per touched record.

    Creates are merge-sets stamped with the plan's ``createdAt``, so applying
    the plan again rewrites the same values and keeps anything added since.

    ``plan.conflicts`` is never read. A conflict found among ``plan.updates``
    (a hand-edited plan) raises ``ValueConflictError`` before anything is built.
    """

    offending = [entry for entry in plan.updates if entry.is_conflict]
    if offending:
        raise ValueConflictError(offending)

    stamp = _plan_timestamp(plan)
    instructions: list[WriteOp] = []
    for source in plan.new:
        record_id = derive_record_id(plan.parent_id, source.match_key)
        record = LiveRecord(
            id=record_id,
            parent_id=plan.parent_id,
            fields=source.populated_fields(),
            object_type=plan.object_type,
            created_at=stamp,
            updated_at=stamp,
        )
        instructions.append(WriteOp("set", record_id, record=record, merge=True))

    grouped: "OrderedDict[str, dict[str, Any]]" = OrderedDict()
    for entry in plan.updates:
        if not entry.record_id:
            raise ReconcileError(f"Update for '{entry.record_key}.{entry.field}' does not name a record id.")
        grouped.setdefault(entry.record_id, {})[entry.field] = entry.proposed_value
    for record_id, fields in grouped.items():
        instructions.append(WriteOp("update", record_id, fields=fields))
    return instructions


def build_merge_instructions(groups: Sequence[DuplicateGroup]) -> list[WriteOp]:
    """Per group, the survivor update comes before the member deletes."""

    instructions: list[WriteOp] = []
    for group in groups:
        survivor = group.survivor
        changed = {
            name: value
            for name, value in group.merged_fields.items()
            if not values_equal(survivor.fields.get(name), value)
        }
        current_images = [image_identity(image) for image in survivor.images]
        merged_images = [image_identity(image) for image in group.merged_images]
        images = tuple(group.merged_images) if merged_images != current_images else None
        if changed or images is not None:
            instructions.append(WriteOp("update", survivor.id, fields=changed, images=images))
        for record_id in group.deleted_ids:
            instructions.append(WriteOp("delete", record_id))
    return instructions


def build_instructions(plan: MigrationPlan | DedupePlan) -> list[WriteOp]:
    if isinstance(plan, DedupePlan):
        return build_merge_instructions(plan.groups)
    return build_plan_instructions(plan)


def instructions_checksum(instructions: Sequence[WriteOp]) -> str:
    return compute_checksum({"instructions": [op.to_dict() for op in instructions]})


def require_backup(collection: str, instructions: Sequence[WriteOp], backup: Backup | None) -> None:
    """
    Refuse to proceed unless ``backup`` covers every existing record the instructions modify.
    """

    touched = list(OrderedDict.fromkeys(op.record_id for op in instructions if op.is_destructive))
    if not touched:
        return
    if backup is None or backup.collection_name != collection:
        raise MissingBackupError(collection)
    missing = [record_id for record_id in touched if record_id not in backup.record_ids()]
    if missing:
        raise MissingBackupError(collection, missing)


# ---------------------------------------------------------------------------
# Applier
# ---------------------------------------------------------------------------


class BatchApplier:
    """Commits write instructions sequentially against one collection."""

    def __init__(self, store: DocumentStore, collection: str, *, batch_size: int = MAX_BATCH_OPS) -> None:
        if not 1 <= batch_size <= MAX_BATCH_OPS:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_OPS}, got {batch_size}.")
        self.store = store
        self.collection = collection
        self.batch_size = batch_size

    def apply(
        self,
        instructions: Sequence[WriteOp],
        *,
        plan_id: str,
        start_index: int = 0,
        backup: Backup | None = None,
    ) -> ApplyReport:
        total = len(instructions)
        if not 0 <= start_index <= total:
            raise ValueError(f"start_index {start_index} is outside the {total} planned instructions.")
        require_backup(self.collection, instructions[start_index:], backup)

        report = ApplyReport(
            plan_id=plan_id,
            collection_name=self.collection,
            total_instructions=total,
            batch_size=self.batch_size,
            start_index=start_index,
            next_index=start_index,
            started_at=_now(),
        )
        batch_number = 0
        for offset in range(start_index, total, self.batch_size):
            batch = list(instructions[offset : offset + self.batch_size])
            batch_number += 1
            started = time.monotonic()
            try:
                self.store.batch_write(self.collection, batch)
            except StoreError as exc:
                record_batch(status="failure", duration_seconds=time.monotonic() - started)
                report.status = "failed"
                report.failed_batch = batch_number
                report.error = str(exc)
                logger.error(
                    "Batch %s for plan %s failed; %s instruction(s) remain unapplied",
                    batch_number,
                    plan_id,
                    total - report.next_index,
                    extra={
                        "reconcile_collection": self.collection,
                        "reconcile_batch_index": batch_number,
                        "reconcile_next_index": report.next_index,
                    },
                )
                break

            record_batch(status="success", duration_seconds=time.monotonic() - started)
            by_action = count_actions(batch)
            record_instructions(by_action)
            for action, count in by_action.items():
                report.applied_by_action[action] = report.applied_by_action.get(action, 0) + count
            report.next_index = offset + len(batch)
            report.batches_committed += 1
            logger.info(
                "Committed batch %s (%s instruction(s)) for plan %s",
                batch_number,
                len(batch),
                plan_id,
                extra={
                    "reconcile_collection": self.collection,
                    "reconcile_batch_index": batch_number,
                    "reconcile_next_index": report.next_index,
                },
            )

        report.finished_at = _now()
        return report

    def apply_plan(
        self,
        plan: ApplyTarget,
        *,
        backup: Backup | None = None,
        start_index: int = 0,
    ) -> ApplyReport:
        """Apply a migration plan, a dedupe plan, or a bare list of duplicate groups."""

        if not isinstance(plan, (MigrationPlan, DedupePlan)):
            plan = DedupePlan(
                collection_name=self.collection,
                parent_id=None,
                created_at=_now(),
                groups=list(plan),
            )
        if plan.collection_name != self.collection:
            raise ReconcileError(
                f"Plan targets collection '{plan.collection_name}' but the applier writes to '{self.collection}'."
            )
        instructions = build_instructions(plan)
        return self.apply(instructions, plan_id=plan.plan_id, start_index=start_index, backup=backup)


__all__ = [
    "BatchApplier",
    "build_instructions",
    "build_merge_instructions",
    "build_plan_instructions",
    "instructions_checksum",
    "require_backup",
]
