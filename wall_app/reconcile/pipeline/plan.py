"""
Assemble a reviewable migration plan from a legacy source and the live store.

legacy rows -> normalize -> fold rows sharing a match key -> match -> diff
"""

from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from datetime import datetime, timezone
from typing import Iterable, Sequence

from config.normalization import DEFAULT_PROFILE, NormalizationProfile

from ..errors import AmbiguousMatchError
from ..models import AmbiguousMatch, LiveRecord, MigrationPlan, SourceRecord, is_empty
from .diff import diff
from .match import LiveIndex, match
from .normalize import normalize

logger = logging.getLogger(__name__)


def fold_source_duplicates(records: Iterable[SourceRecord]) -> tuple[list[SourceRecord], int]:
    """
    Collapse source records sharing a match key.

    The first row wins; later rows only fill fields the first left empty.
    Returns the folded records (in first-seen order) and how many rows were folded away.
    """

    folded: "OrderedDict[str, SourceRecord]" = OrderedDict()
    folded_count = 0
    for record in records:
        key = record.match_key
        existing = folded.get(key)
        if existing is None:
            folded[key] = record
            continue
        folded_count += 1
        fields = dict(existing.fields)
        for name, value in record.fields.items():
            if is_empty(fields.get(name)) and not is_empty(value):
                fields[name] = value
        folded[key] = SourceRecord(
            fields=fields,
            row_number=existing.row_number,
            issues=existing.issues + record.issues,
        )
    return list(folded.values()), folded_count


def _issue_rows(record: SourceRecord) -> list[dict]:
    return [
        {"rowNumber": record.row_number, "matchKey": record.match_key, **issue.to_dict()} for issue in record.issues
    ]


def build_migration_plan(
    sources: Iterable[SourceRecord],
    live: Sequence[LiveRecord],
    *,
    collection_name: str,
    parent_id: str | None = None,
    object_type: str | None = None,
    profile: NormalizationProfile | None = None,
    malformed_rows: int = 0,
    created_at: str | None = None,
) -> MigrationPlan:
    profile = profile or DEFAULT_PROFILE
    normalized = [normalize(record, profile) for record in sources]
    usable = [record for record in normalized if record.match_key]
    unusable = len(normalized) - len(usable)
    records, folded_count = fold_source_duplicates(usable)
    index = LiveIndex(live)

    plan = MigrationPlan(
        collection_name=collection_name,
        parent_id=parent_id,
        object_type=object_type,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
    )
    kinds: Counter[str] = Counter()
    matched_count = 0
    unchanged = 0

    for record in records:
        plan.issues.extend(_issue_rows(record))
        try:
            matched = match(record, index)
        except AmbiguousMatchError as exc:
            logger.info("Deferring ambiguous match for '%s' to duplicate resolution", exc.match_key)
            plan.ambiguous.append(AmbiguousMatch(exc.match_key, exc.candidate_ids, record.row_number))
            continue

        if matched is None:
            plan.new.append(record)
            continue

        matched_count += 1
        entries = diff(record, matched, profile=profile, parent_id=parent_id)
        if not entries:
            unchanged += 1
        for entry in entries:
            kinds[entry.kind] += 1
            if entry.is_conflict:
                plan.conflicts.append(entry)
            else:
                plan.updates.append(entry)

    plan.statistics = {
        "sourceRecords": len(normalized),
        "sourceMalformed": malformed_rows + unusable,
        "sourceDuplicatesFolded": folded_count,
        "liveRecords": len(live),
        "matched": matched_count,
        "unchanged": unchanged,
        "new": len(plan.new),
        "updates": kinds["update"],
        "formatting": kinds["formatting"],
        "conflicts": kinds["conflict"],
        "ambiguous": len(plan.ambiguous),
        "issues": len(plan.issues),
    }
    logger.info(
        "Built migration plan for %s: %s new, %s updates, %s conflicts, %s ambiguous",
        collection_name,
        len(plan.new),
        len(plan.updates),
        len(plan.conflicts),
        len(plan.ambiguous),
    )
    return plan


__all__ = ["build_migration_plan", "fold_source_duplicates"]
