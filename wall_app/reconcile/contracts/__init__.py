"""Canonical field contract helpers for legacy source adapters."""

from __future__ import annotations

from .wall_item import (
    WALL_ITEM_FIELDS,
    FieldSpec,
    get_wall_item_alias_map,
    get_wall_item_field_specs,
    get_wall_item_required_headers,
    normalize_header,
    resolve_headers,
)

__all__ = [
    "FieldSpec",
    "WALL_ITEM_FIELDS",
    "get_wall_item_alias_map",
    "get_wall_item_field_specs",
    "get_wall_item_required_headers",
    "normalize_header",
    "resolve_headers",
]
