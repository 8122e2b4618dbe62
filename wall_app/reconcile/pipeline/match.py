"""
Exact match-key resolution of legacy records against live records.

There is deliberately no fuzzy distance here: a source record either shares
its match key with exactly one live record, with none (it is new), or with
several, in which case the caller must resolve the duplicates first.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping, Sequence, Union

from ..errors import AmbiguousMatchError
from ..models import LiveRecord, SourceRecord


class LiveIndex:
    """Live records grouped by match key. Records with an empty key are not indexed."""

    def __init__(self, records: Iterable[LiveRecord]) -> None:
        buckets: dict[str, list[LiveRecord]] = defaultdict(list)
        for record in records:
            key = record.match_key
            if key:
                buckets[key].append(record)
        self._buckets: Mapping[str, tuple[LiveRecord, ...]] = {
            key: tuple(sorted(members, key=lambda record: record.id)) for key, members in buckets.items()
        }

    def candidates(self, match_key: str) -> tuple[LiveRecord, ...]:
        if not match_key:
            return ()
        return self._buckets.get(match_key, ())

    def __len__(self) -> int:
        return sum(len(members) for members in self._buckets.values())


LiveRecords = Union[LiveIndex, Sequence[LiveRecord]]


def match(source: SourceRecord, live: LiveRecords) -> LiveRecord | None:
    """
    Return the single live record sharing ``source``'s match key, or ``None``.

    Raises ``AmbiguousMatchError`` when more than one live record shares the key.
    """

    index = live if isinstance(live, LiveIndex) else LiveIndex(live)
    candidates = index.candidates(source.match_key)
    if not candidates:
        return None
    if len(candidates) > 1:
        raise AmbiguousMatchError(source.match_key, [candidate.id for candidate in candidates])
    return candidates[0]


__all__ = ["LiveIndex", "match"]
