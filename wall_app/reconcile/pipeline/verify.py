"""
Post-apply verification.

Compares a before and an after snapshot with what the plan predicted: record
counts, duplicate groups, field population rates and whether every planned
update is visible in the after state. Any mismatch is reported as a
divergence; nothing here writes to the store.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Sequence, Union

from ..models import (
    Backup,
    DedupePlan,
    LiveRecord,
    MigrationPlan,
    VerificationReport,
    derive_record_id,
    is_empty,
    values_equal,
)
from ..utils import encode_value
from .dedupe import count_duplicate_groups, group_by_match_key

Snapshot = Union[Backup, Sequence[LiveRecord]]


def _records(snapshot: Snapshot) -> list[LiveRecord]:
    if isinstance(snapshot, Backup):
        return list(snapshot.snapshot)
    return list(snapshot)


def population_rates(records: Iterable[LiveRecord]) -> dict[str, float]:
    """Share of records holding a non-empty value, per field."""

    records = list(records)
    if not records:
        return {}
    populated: Counter[str] = Counter()
    seen: set[str] = set()
    for record in records:
        for name, value in record.fields.items():
            seen.add(name)
            if not is_empty(value):
                populated[name] += 1
    return {name: round(populated[name] / len(records), 4) for name in sorted(seen)}


def _populated_counts(records: Iterable[LiveRecord]) -> Counter[str]:
    counts: Counter[str] = Counter()
    for record in records:
        counts.update(record.populated_fields().keys())
    return counts


def _same(left: Any, right: Any) -> bool:
    return encode_value(left) == encode_value(right)


def snapshot_differences(before: Snapshot, after: Snapshot) -> list[str]:
    """
    Describe how ``after`` differs from ``before``.

    Lists ids missing from ``after``, ids only present in ``after`` and every
    changed field, attribute, image list, parent or creation time. Values are
    compared with their types, so a timestamp that came back as text counts as
    a change. An empty list means both snapshots hold the same data.
    """

    before_by_id = {record.id: record for record in _records(before)}
    after_by_id = {record.id: record for record in _records(after)}
    differences: list[str] = []

    for record_id in sorted(set(before_by_id) - set(after_by_id)):
        differences.append(f"missing record {record_id}")
    for record_id in sorted(set(after_by_id) - set(before_by_id)):
        differences.append(f"extra record {record_id}")

    for record_id in sorted(set(before_by_id) & set(after_by_id)):
        old, new = before_by_id[record_id], after_by_id[record_id]
        for name in sorted(set(old.fields) | set(new.fields)):
            if not _same(old.fields.get(name), new.fields.get(name)):
                differences.append(f"{record_id}.{name}: {old.fields.get(name)!r} -> {new.fields.get(name)!r}")
        for name in sorted(set(old.attributes) | set(new.attributes)):
            if not _same(old.attributes.get(name), new.attributes.get(name)):
                differences.append(
                    f"{record_id}.{name}: {old.attributes.get(name)!r} -> {new.attributes.get(name)!r}"
                )
        if not _same(list(old.images), list(new.images)):
            differences.append(f"{record_id}.images changed")
        if old.parent_id != new.parent_id:
            differences.append(f"{record_id}.parentId: {old.parent_id!r} -> {new.parent_id!r}")
        if not _same(old.created_at, new.created_at):
            differences.append(f"{record_id}.createdAt: {old.created_at!r} -> {new.created_at!r}")
    return differences


def expected_count(plan: MigrationPlan | DedupePlan, before: Sequence[LiveRecord]) -> int:
    """
    Predicted size of the after snapshot.

    Creates whose derived id already exists (a re-applied plan) and deletes of
    ids already gone do not move the count.
    """

    before_ids = {record.id for record in before}
    if isinstance(plan, DedupePlan):
        deleted = {record_id for group in plan.groups for record_id in group.deleted_ids}
        return len(before_ids) - len(deleted & before_ids)
    created = {derive_record_id(plan.parent_id, record.match_key) for record in plan.new}
    return len(before_ids) + len(created - before_ids)


def _migration_divergences(
    plan: MigrationPlan, before: Sequence[LiveRecord], after_by_id: dict[str, LiveRecord]
) -> tuple[int, list[str]]:
    unapplied = 0
    divergences: list[str] = []
    for entry in plan.updates:
        record = after_by_id.get(entry.record_id or "")
        if record is None or not values_equal(record.fields.get(entry.field), entry.proposed_value):
            unapplied += 1
    for source in plan.new:
        record_id = derive_record_id(plan.parent_id, source.match_key)
        if record_id not in after_by_id:
            divergences.append(f"planned record {record_id} ('{source.match_key}') is missing")

    before_counts = _populated_counts(before)
    after_counts = _populated_counts(after_by_id.values())
    for name in sorted(before_counts):
        if after_counts[name] < before_counts[name]:
            divergences.append(
                f"populated '{name}' values dropped from {before_counts[name]} to {after_counts[name]}"
            )
    return unapplied, divergences


def _dedupe_divergences(plan: DedupePlan, after: Sequence[LiveRecord]) -> tuple[int, list[str]]:
    after_by_id = {record.id: record for record in after}
    remaining = group_by_match_key(after)
    unapplied = 0
    divergences: list[str] = []
    for group in plan.groups:
        survivor = after_by_id.get(group.survivor_id)
        if survivor is None:
            divergences.append(f"survivor {group.survivor_id} of '{group.match_key}' is missing")
            continue
        for name, value in group.merged_fields.items():
            if not values_equal(survivor.fields.get(name), value):
                unapplied += 1
        for record_id in group.deleted_ids:
            if record_id in after_by_id:
                divergences.append(f"duplicate {record_id} of '{group.match_key}' was not deleted")
        if len(remaining.get(group.match_key, ())) > 1:
            divergences.append(f"'{group.match_key}' still has {len(remaining[group.match_key])} records")
    return unapplied, divergences


def verify(
    plan: MigrationPlan | DedupePlan | None,
    before: Snapshot,
    after: Snapshot,
) -> VerificationReport:
    before_records = _records(before)
    after_records = _records(after)
    report = VerificationReport(
        before_count=len(before_records),
        after_count=len(after_records),
        expected_count=None,
        duplicate_groups_before=count_duplicate_groups(before_records),
        duplicate_groups_after=count_duplicate_groups(after_records),
        population_before=population_rates(before_records),
        population_after=population_rates(after_records),
    )
    if plan is None:
        return report

    report.plan_id = plan.plan_id
    report.expected_count = expected_count(plan, before_records)
    if report.after_count != report.expected_count:
        report.divergences.append(
            f"expected {report.expected_count} records after apply, found {report.after_count}"
        )

    if isinstance(plan, DedupePlan):
        unapplied, divergences = _dedupe_divergences(plan, after_records)
    else:
        after_by_id = {record.id: record for record in after_records}
        unapplied, divergences = _migration_divergences(plan, before_records, after_by_id)
    report.unapplied_updates = unapplied
    if unapplied:
        report.divergences.append(f"{unapplied} planned update(s) are not reflected in the after snapshot")
    report.divergences.extend(divergences)
    return report


__all__ = ["expected_count", "population_rates", "snapshot_differences", "verify"]
