"""Reconciliation pipeline stages."""

from .apply import BatchApplier, build_instructions, build_merge_instructions, build_plan_instructions, require_backup
from .backup import BackupManager, load_backup
from .dedupe import build_dedupe_plan, count_duplicate_groups, find_duplicates
from .diff import diff
from .export import export_records
from .match import LiveIndex, match
from .normalize import normalize
from .plan import build_migration_plan
from .verify import population_rates, snapshot_differences, verify

__all__ = [
    "BackupManager",
    "BatchApplier",
    "LiveIndex",
    "build_dedupe_plan",
    "build_instructions",
    "build_merge_instructions",
    "build_migration_plan",
    "build_plan_instructions",
    "count_duplicate_groups",
    "diff",
    "export_records",
    "find_duplicates",
    "load_backup",
    "match",
    "normalize",
    "population_rates",
    "require_backup",
    "snapshot_differences",
    "verify",
]
