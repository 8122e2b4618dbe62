"""
Field-level comparison of a legacy record with its matched live record.

Value conflicts need a human; formatting differences do not. A field where
both sides hold different values is a conflict unless the field is one of the
profile's formatting fields and the values only differ in case, whitespace or
punctuation.
"""

from __future__ import annotations

from typing import Any

from config.normalization import DEFAULT_PROFILE, NormalizationProfile

from ..models import DiffEntry, LiveRecord, SourceRecord, compute_match_key, derive_record_id, is_empty, values_equal


def is_formatting_only(current: Any, proposed: Any) -> bool:
    if not isinstance(current, str) or not isinstance(proposed, str):
        return False
    return compute_match_key(current) == compute_match_key(proposed)


def _field_order(source: SourceRecord, matched: LiveRecord | None) -> list[str]:
    names = list(source.fields)
    if matched is not None:
        names.extend(name for name in matched.fields if name not in source.fields)
    return names


def diff(
    source: SourceRecord,
    matched: LiveRecord | None,
    *,
    profile: NormalizationProfile | None = None,
    parent_id: str | None = None,
) -> list[DiffEntry]:
    """
    Compare ``source`` with ``matched``.

    Without a match every populated source field becomes an ``addition`` on the
    id the record will be created under. With a match, live-empty fields the
    source fills become ``update`` entries; the engine never clears live data,
    so a source-empty field produces nothing.
    """

    profile = profile or DEFAULT_PROFILE
    record_key = source.match_key

    if matched is None:
        record_id = derive_record_id(parent_id, record_key)
        return [
            DiffEntry(record_key, name, None, value, "addition", record_id)
            for name, value in source.fields.items()
            if not is_empty(value)
        ]

    entries: list[DiffEntry] = []
    formatting_fields = set(profile.formatting_fields)
    for name in _field_order(source, matched):
        proposed = source.fields.get(name)
        current = matched.fields.get(name)
        if is_empty(proposed) or values_equal(current, proposed):
            continue
        if is_empty(current):
            kind = "update"
        elif name in formatting_fields and is_formatting_only(current, proposed):
            kind = "formatting"
        else:
            kind = "conflict"
        entries.append(DiffEntry(record_key, name, current, proposed, kind, matched.id))
    return entries


__all__ = ["diff", "is_formatting_only"]
