"""
Field cleaning for legacy source records.

Rules run in a fixed order: whitespace collapse on every string, typo
correction for categorical fields, then clearing of out-of-range bounded
years. Nothing here raises; values that cannot be cleaned degrade to an empty
string and the reason is recorded on the returned record.
"""

from __future__ import annotations

import re
from typing import Any

from config.normalization import DEFAULT_PROFILE, CategoricalRule, NormalizationProfile, YearRule

from ..models import NormalizationIssue, SourceRecord, is_empty

_WHITESPACE_RE = re.compile(r"\s+")
_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")


def collapse_whitespace(value: Any) -> Any:
    if isinstance(value, str):
        return _WHITESPACE_RE.sub(" ", value).strip()
    return value


def clean_categorical(value: Any, rule: CategoricalRule) -> tuple[Any, NormalizationIssue | None]:
    """Map ``value`` onto the rule's canonical spelling."""

    if is_empty(value):
        return value, None
    token = str(value).strip()
    folded = token.casefold()

    if folded in {rejected.casefold() for rejected in rule.rejected_values}:
        return "", NormalizationIssue(rule.field_name, "rejected_value", value)
    for canonical in rule.canonical_values:
        if canonical.casefold() == folded:
            return canonical, None
    corrected = rule.typos.get(folded)
    if corrected is not None:
        return corrected, NormalizationIssue(rule.field_name, "typo_corrected", value)
    return value, NormalizationIssue(rule.field_name, "unrecognized_value", value)


def clean_year(value: Any, rule: YearRule) -> tuple[Any, NormalizationIssue | None]:
    """
    Keep a four-digit year inside the rule's bounds.

    Integral numbers keep their type; text yields the first embedded four-digit
    year ("1960 Or 61" becomes "1960"). Anything else is cleared.
    """

    if is_empty(value):
        return value, None

    if isinstance(value, bool):
        return "", NormalizationIssue(rule.field_name, "unparseable_year", value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not value.is_integer():
            return "", NormalizationIssue(rule.field_name, "unparseable_year", value)
        year = int(value)
        if rule.minimum <= year <= rule.maximum:
            return year, None
        return "", NormalizationIssue(rule.field_name, "out_of_range", value)

    token = str(value).strip()
    found = _YEAR_RE.search(token)
    if found is None:
        return "", NormalizationIssue(rule.field_name, "unparseable_year", value)
    year_text = found.group(1)
    if not rule.minimum <= int(year_text) <= rule.maximum:
        return "", NormalizationIssue(rule.field_name, "out_of_range", value)
    if year_text != token:
        return year_text, NormalizationIssue(rule.field_name, "year_extracted", value)
    return year_text, None


def normalize(record: SourceRecord, profile: NormalizationProfile | None = None) -> SourceRecord:
    """Return a cleaned copy of ``record``; the input is left untouched."""

    profile = profile or DEFAULT_PROFILE
    issues = list(record.issues)
    cleaned: dict[str, Any] = {}

    for field_name, raw_value in record.fields.items():
        value = collapse_whitespace(raw_value)

        categorical = profile.categorical_rule(field_name)
        if categorical is not None:
            value, issue = clean_categorical(value, categorical)
            if issue is not None:
                issues.append(issue)

        year_rule = profile.year_rule(field_name)
        if year_rule is not None:
            value, issue = clean_year(value, year_rule)
            if issue is not None:
                issues.append(issue)

        cleaned[field_name] = value

    return SourceRecord(fields=cleaned, row_number=record.row_number, issues=tuple(issues))


__all__ = ["clean_categorical", "clean_year", "collapse_whitespace", "normalize"]
