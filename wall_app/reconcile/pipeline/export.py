"""CSV export of live records for offline review."""

from __future__ import annotations

import csv
from typing import IO, Iterable, Sequence

from ..contracts import get_wall_item_field_specs
from ..models import LiveRecord
from ..utils import ensure_json_serializable

LEADING_COLUMNS = ("id", "parentId", "objectType")
TRAILING_COLUMNS = ("imageCount", "createdAt", "updatedAt")


def export_columns(records: Sequence[LiveRecord]) -> list[str]:
    """Contract fields first, then any other field seen on a record, alphabetically."""

    contract = [spec.name for spec in get_wall_item_field_specs()]
    extra = sorted({name for record in records for name in record.fields} - set(contract))
    return [*LEADING_COLUMNS, *contract, *extra, *TRAILING_COLUMNS]


def _cell(value: object) -> object:
    value = ensure_json_serializable(value)
    if isinstance(value, (list, dict)):
        return ", ".join(str(item) for item in value) if isinstance(value, list) else str(value)
    return "" if value is None else value


def export_records(records: Iterable[LiveRecord], handle: IO[str]) -> int:
    """Write ``records`` as CSV to ``handle`` sorted by name; returns the row count."""

    ordered = sorted(records, key=lambda record: (record.match_key, record.id))
    writer = csv.DictWriter(handle, fieldnames=export_columns(ordered), extrasaction="ignore")
    writer.writeheader()
    for record in ordered:
        row = {name: _cell(value) for name, value in record.fields.items()}
        row.update(
            {
                "id": record.id,
                "parentId": record.parent_id or "",
                "objectType": record.object_type or "",
                "imageCount": len(record.images),
                "createdAt": _cell(record.created_at),
                "updatedAt": _cell(record.updated_at),
            }
        )
        writer.writerow(row)
    return len(ordered)


__all__ = ["export_columns", "export_records"]
