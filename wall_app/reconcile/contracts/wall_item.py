"""Canonical field contract for legacy wall item exports.

Legacy spreadsheets were maintained by hand for years, so the same field shows
up under several headers. The contract maps each accepted header onto the
field name used inside ``fieldData`` of a live wall item.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical wall item field."""

    name: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()

    def headers(self) -> Tuple[str, ...]:
        return (self.name, *self.aliases)


WALL_ITEM_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="name",
        description="Full display name of the person.",
        required=True,
        aliases=("full_name", "veteran_name", "display_name"),
    ),
    FieldSpec(
        name="rank",
        description="Rank at separation.",
        aliases=("military_rank",),
    ),
    FieldSpec(
        name="branch",
        description="Branch of service.",
        aliases=("branch_of_service", "service_branch", "branches"),
    ),
    FieldSpec(
        name="graduationYear",
        description="Four-digit graduation year.",
        aliases=("graduation_year", "grad_year", "gradyear", "class_of", "class_year"),
    ),
    FieldSpec(
        name="militaryEntryDate",
        description="Date or year of entry into service.",
        aliases=("military_entry_date", "entry_date", "entered_service"),
    ),
    FieldSpec(
        name="militaryExitDate",
        description="Date or year of separation from service.",
        aliases=("military_exit_date", "exit_date", "discharge_date"),
    ),
    FieldSpec(
        name="description",
        description="Free-text biography.",
        aliases=("bio", "biography", "notes"),
    ),
)


def normalize_header(header: str) -> str:
    """Normalize a header for comparison (case/space/punctuation agnostic)."""

    token = header.strip().lower()
    for char in (" ", "-", ".", "/"):
        token = token.replace(char, "_")
    return token


def get_wall_item_field_specs() -> Tuple[FieldSpec, ...]:
    return WALL_ITEM_FIELDS


def get_wall_item_required_headers() -> Tuple[str, ...]:
    return tuple(spec.name for spec in WALL_ITEM_FIELDS if spec.required)


def get_wall_item_alias_map() -> Mapping[str, str]:
    """Map normalized header tokens to canonical names (includes aliases)."""

    mapping: dict[str, str] = {}
    for spec in WALL_ITEM_FIELDS:
        for header in spec.headers():
            mapping[normalize_header(header)] = spec.name
    return mapping


def resolve_headers(headers: Sequence[str]) -> Tuple[str, ...]:
    """Resolve raw headers to canonical names; unknown headers pass through unchanged."""

    alias_map = get_wall_item_alias_map()
    return tuple(alias_map.get(normalize_header(header), header.strip()) for header in headers)
