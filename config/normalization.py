"""
Normalization profile for legacy wall records.

The reconciliation engine loads this module to decide how incoming legacy
values are cleaned before they are matched and diffed against live records:
which categorical fields carry a typo table, which fields are bounded years,
and which fields treat case/whitespace/punctuation-only differences as
formatting rather than conflicts.

Configuration is file-backed so the tables can be extended without code
changes. Operators can override the defaults by providing a JSON or YAML file
path through the ``RECONCILE_NORMALIZATION_PROFILE_PATH`` setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Sequence

import json

try:
    import yaml  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    yaml = None


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoricalRule:
    """
    Cleaning rule for a field restricted to a known set of values.

    Attributes:
        field_name: Record field the rule applies to.
        canonical_values: Accepted spellings. Matching is case-insensitive and
            the canonical spelling is returned.
        typos: Known misspellings keyed by their case-folded form.
        rejected_values: Case-folded values that are garbage and are cleared.
    """

    field_name: str
    canonical_values: Sequence[str]
    typos: Mapping[str, str] = field(default_factory=dict)
    rejected_values: Sequence[str] = ()


@dataclass(frozen=True)
class YearRule:
    """Bounded four-digit year field; values outside the range are cleared."""

    field_name: str
    minimum: int
    maximum: int


@dataclass(frozen=True)
class NormalizationProfile:
    key: str
    label: str
    categorical_rules: Sequence[CategoricalRule]
    year_rules: Sequence[YearRule]
    formatting_fields: Sequence[str]

    def categorical_rule(self, field_name: str) -> CategoricalRule | None:
        for rule in self.categorical_rules:
            if rule.field_name == field_name:
                return rule
        return None

    def year_rule(self, field_name: str) -> YearRule | None:
        for rule in self.year_rules:
            if rule.field_name == field_name:
                return rule
        return None

    def with_year_bounds(self, minimum: int, maximum: int) -> "NormalizationProfile":
        """Return a copy whose year rules use the supplied bounds."""

        rules = tuple(replace(rule, minimum=minimum, maximum=maximum) for rule in self.year_rules)
        return replace(self, year_rules=rules)


# ---------------------------------------------------------------------------
# Default profile
# ---------------------------------------------------------------------------

BRANCH_VALUES: tuple[str, ...] = (
    "Army",
    "Navy",
    "Air Force",
    "Marines",
    "Coast Guard",
    "Space Force",
    "National Guard",
    "Air National Guard",
    "Army National Guard",
    "Unknown",
)

BRANCH_TYPOS: dict[str, str] = {
    "unknwon": "Unknown",
    "unkniwn": "Unknown",
    "airforce": "Air Force",
    "air-force": "Air Force",
    "usaf": "Air Force",
    "us army": "Army",
    "usn": "Navy",
    "us navy": "Navy",
    "marine": "Marines",
    "marine corps": "Marines",
    "usmc": "Marines",
    "coastguard": "Coast Guard",
    "uscg": "Coast Guard",
}

BRANCH_REJECTED: tuple[str, ...] = ("?", "67", "there is a buddy?? in yearbook")

DEFAULT_YEAR_MIN = 1920
DEFAULT_YEAR_MAX = 2030

DEFAULT_PROFILE = NormalizationProfile(
    key="default",
    label="Default wall normalization",
    categorical_rules=(
        CategoricalRule(
            field_name="branch",
            canonical_values=BRANCH_VALUES,
            typos=BRANCH_TYPOS,
            rejected_values=BRANCH_REJECTED,
        ),
    ),
    year_rules=(YearRule("graduationYear", DEFAULT_YEAR_MIN, DEFAULT_YEAR_MAX),),
    formatting_fields=("name", "rank", "description"),
)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


class NormalizationConfigError(RuntimeError):
    """Raised when a profile override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise NormalizationConfigError(f"Normalization override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise NormalizationConfigError(f"Unable to read normalization override file {path}: {exc}") from exc

    if path.suffix.lower() in {".yaml", ".yml"}:
        if yaml is None:
            raise NormalizationConfigError("PyYAML is required to load YAML normalization overrides.")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise NormalizationConfigError(f"Normalization override file {path} is not valid YAML: {exc}") from exc
    else:
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise NormalizationConfigError(f"Normalization override file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, Mapping):
        raise NormalizationConfigError("Normalization override must be a JSON/YAML object.")
    return dict(data)


def _coerce_sequence(value: object | None, *, item_name: str) -> tuple:
    if value is None:
        return ()
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return tuple(value)
    raise NormalizationConfigError(f"Expected sequence for {item_name}, got {type(value).__name__}.")


def _coerce_categorical_rule(raw: Mapping[str, object]) -> CategoricalRule:
    name = str(raw.get("field_name") or "").strip()
    if not name:
        raise NormalizationConfigError("Each categorical rule requires a non-empty field_name.")
    values = tuple(
        str(item).strip()
        for item in _coerce_sequence(raw.get("canonical_values"), item_name=f"{name}.canonical_values")
        if str(item).strip()
    )
    if not values:
        raise NormalizationConfigError(f"Categorical rule {name} requires canonical_values.")
    raw_typos = raw.get("typos") or {}
    if not isinstance(raw_typos, Mapping):
        raise NormalizationConfigError(f"Categorical rule {name} typos must be an object.")
    typos = {str(key).strip().casefold(): str(value).strip() for key, value in raw_typos.items()}
    rejected = tuple(
        str(item).strip().casefold()
        for item in _coerce_sequence(raw.get("rejected_values"), item_name=f"{name}.rejected_values")
    )
    return CategoricalRule(field_name=name, canonical_values=values, typos=typos, rejected_values=rejected)


def _coerce_year_rule(raw: Mapping[str, object]) -> YearRule:
    name = str(raw.get("field_name") or "").strip()
    if not name:
        raise NormalizationConfigError("Each year rule requires a non-empty field_name.")
    try:
        minimum = int(raw.get("minimum", DEFAULT_YEAR_MIN))  # type: ignore[arg-type]
        maximum = int(raw.get("maximum", DEFAULT_YEAR_MAX))  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise NormalizationConfigError(f"Year rule {name} bounds must be integers.") from exc
    if minimum > maximum:
        raise NormalizationConfigError(f"Year rule {name} has minimum greater than maximum.")
    return YearRule(field_name=name, minimum=minimum, maximum=maximum)


def _coerce_profile(raw: Mapping[str, object]) -> NormalizationProfile:
    key = str(raw.get("key") or DEFAULT_PROFILE.key).strip() or DEFAULT_PROFILE.key
    label = str(raw.get("label") or DEFAULT_PROFILE.label).strip() or DEFAULT_PROFILE.label

    raw_categorical = raw.get("categorical_rules")
    if raw_categorical is None:
        categorical = tuple(DEFAULT_PROFILE.categorical_rules)
    else:
        if not isinstance(raw_categorical, Iterable):
            raise NormalizationConfigError("categorical_rules must be a sequence.")
        categorical = tuple(_coerce_categorical_rule(rule) for rule in raw_categorical)  # type: ignore[arg-type]

    raw_years = raw.get("year_rules")
    if raw_years is None:
        years = tuple(DEFAULT_PROFILE.year_rules)
    else:
        if not isinstance(raw_years, Iterable):
            raise NormalizationConfigError("year_rules must be a sequence.")
        years = tuple(_coerce_year_rule(rule) for rule in raw_years)  # type: ignore[arg-type]

    formatting = tuple(
        str(item).strip()
        for item in _coerce_sequence(raw.get("formatting_fields"), item_name="formatting_fields")
        if str(item).strip()
    ) or tuple(DEFAULT_PROFILE.formatting_fields)

    return NormalizationProfile(
        key=key,
        label=label,
        categorical_rules=categorical,
        year_rules=years,
        formatting_fields=formatting,
    )


def load_profile(config: Mapping[str, object] | None = None) -> NormalizationProfile:
    """
    Load the active normalization profile.

    If ``RECONCILE_NORMALIZATION_PROFILE_PATH`` is set, its JSON/YAML content
    overrides the default profile. ``RECONCILE_YEAR_MIN``/``RECONCILE_YEAR_MAX``
    replace the year bounds of profiles that do not come from a file.
    """

    config_map = config or {}
    override_path = config_map.get("RECONCILE_NORMALIZATION_PROFILE_PATH")
    if override_path:
        return _coerce_profile(_load_override(Path(str(override_path))))

    minimum = config_map.get("RECONCILE_YEAR_MIN")
    maximum = config_map.get("RECONCILE_YEAR_MAX")
    if minimum is None and maximum is None:
        return DEFAULT_PROFILE
    return DEFAULT_PROFILE.with_year_bounds(
        int(minimum if minimum is not None else DEFAULT_YEAR_MIN),  # type: ignore[arg-type]
        int(maximum if maximum is not None else DEFAULT_YEAR_MAX),  # type: ignore[arg-type]
    )


__all__ = [
    "CategoricalRule",
    "DEFAULT_PROFILE",
    "NormalizationConfigError",
    "NormalizationProfile",
    "YearRule",
    "load_profile",
]
