"""
Duplicate detection and survivor selection for live records.

Records sharing a match key form a group. The survivor is chosen by an ordered
tie-break (has an image, most populated fields, earliest ``createdAt``,
smallest id) and receives the union of every member's populated fields and
images, so a merge never drops data.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from ..models import DedupePlan, DuplicateGroup, LiveRecord, image_identity, is_empty

logger = logging.getLogger(__name__)


def _created_sort_value(value: datetime | None) -> tuple[int, float]:
    if value is None:
        return (1, 0.0)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (0, value.timestamp())


def survivor_priority(record: LiveRecord) -> tuple:
    """Sort key: lower sorts first and wins."""

    return (
        0 if record.has_image else 1,
        -record.populated_count,
        _created_sort_value(record.created_at),
        record.id,
    )


def merge_fields(ordered: Sequence[LiveRecord]) -> dict[str, Any]:
    """First non-empty value per field, in survivor-priority order."""

    merged: dict[str, Any] = {}
    for member in ordered:
        for name, value in member.fields.items():
            if name not in merged or (is_empty(merged[name]) and not is_empty(value)):
                merged[name] = value
    return merged


def merge_images(ordered: Sequence[LiveRecord]) -> tuple[Any, ...]:
    seen: set[Any] = set()
    images: list[Any] = []
    for member in ordered:
        for image in member.images:
            if is_empty(image):
                continue
            identity = image_identity(image)
            if identity in seen:
                continue
            seen.add(identity)
            images.append(image)
    return tuple(images)


def group_by_match_key(live: Iterable[LiveRecord]) -> dict[str, list[LiveRecord]]:
    buckets: dict[str, list[LiveRecord]] = defaultdict(list)
    for record in live:
        key = record.match_key
        if key:
            buckets[key].append(record)
    return buckets


def find_duplicates(live: Iterable[LiveRecord]) -> list[DuplicateGroup]:
    """Return one group per match key shared by two or more live records."""

    groups: list[DuplicateGroup] = []
    for key, members in sorted(group_by_match_key(live).items()):
        if len(members) < 2:
            continue
        ordered = sorted(members, key=survivor_priority)
        groups.append(
            DuplicateGroup(
                match_key=key,
                members=tuple(ordered),
                survivor_id=ordered[0].id,
                merged_fields=merge_fields(ordered),
                merged_images=merge_images(ordered),
            )
        )
    return groups


def count_duplicate_groups(live: Iterable[LiveRecord]) -> int:
    return sum(1 for members in group_by_match_key(live).values() if len(members) > 1)


def build_dedupe_plan(
    live: Sequence[LiveRecord],
    *,
    collection_name: str,
    parent_id: str | None = None,
    object_type: str | None = None,
    created_at: str | None = None,
) -> DedupePlan:
    groups = find_duplicates(live)
    plan = DedupePlan(
        collection_name=collection_name,
        parent_id=parent_id,
        object_type=object_type,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
        groups=groups,
    )
    logger.info(
        "Found %s duplicate group(s) in %s covering %s redundant record(s)",
        len(groups),
        collection_name,
        plan.deleted_count,
    )
    return plan


__all__ = [
    "build_dedupe_plan",
    "count_duplicate_groups",
    "find_duplicates",
    "group_by_match_key",
    "merge_fields",
    "merge_images",
    "survivor_priority",
]
