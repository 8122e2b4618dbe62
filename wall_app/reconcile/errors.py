"""
Error taxonomy for the reconciliation engine.

Only malformed legacy rows are recovered locally (skipped and counted); every
other condition surfaces to the operator through the run's report artifact or
aborts the command before any write happens.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .models import ApplyReport, DiffEntry


class ReconcileError(Exception):
    """Base exception for reconciliation failures."""


class MalformedInputError(ReconcileError):
    """Raised when a legacy source row cannot be turned into a record."""

    def __init__(self, row_number: int, message: str) -> None:
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.reason = message


class AmbiguousMatchError(ReconcileError):
    """Raised when more than one live record shares a source record's match key."""

    def __init__(self, match_key: str, candidate_ids: Sequence[str]) -> None:
        super().__init__(
            f"Match key '{match_key}' resolves to {len(candidate_ids)} live records "
            f"({', '.join(candidate_ids)}). Resolve the duplicates before migrating this record."
        )
        self.match_key = match_key
        self.candidate_ids = tuple(candidate_ids)


class ValueConflictError(ReconcileError):
    """Raised when conflicting diff entries are offered for automatic application."""

    def __init__(self, entries: Iterable["DiffEntry"]) -> None:
        self.entries = tuple(entries)
        fields = ", ".join(sorted({f"{entry.record_key}.{entry.field}" for entry in self.entries}))
        super().__init__(
            f"{len(self.entries)} conflicting value(s) cannot be applied automatically: {fields}. "
            "Conflicts require manual resolution."
        )


class MissingBackupError(ReconcileError):
    """Raised when a destructive apply is attempted without a covering backup."""

    def __init__(self, collection: str, missing_ids: Sequence[str] = ()) -> None:
        self.collection = collection
        self.missing_ids = tuple(missing_ids)
        if self.missing_ids:
            preview = ", ".join(self.missing_ids[:5])
            more = "" if len(self.missing_ids) <= 5 else f" (+{len(self.missing_ids) - 5} more)"
            message = (
                f"Backup for collection '{collection}' does not contain {len(self.missing_ids)} "
                f"record(s) the plan would modify: {preview}{more}."
            )
        else:
            message = f"No verified backup exists for collection '{collection}'. Run a backup before applying."
        super().__init__(message)


class BatchCommitFailure(ReconcileError):
    """Raised when the store rejected a batch; carries the partial apply report."""

    def __init__(self, report: "ApplyReport") -> None:
        self.report = report
        super().__init__(
            f"Batch {report.failed_batch} failed for plan {report.plan_id}: {report.error}. "
            f"Instructions before index {report.next_index} are applied; resume from there."
        )


class ArtifactError(ReconcileError):
    """Raised when a plan, backup or report artifact cannot be written or read."""


__all__ = [
    "AmbiguousMatchError",
    "ArtifactError",
    "BatchCommitFailure",
    "MalformedInputError",
    "MissingBackupError",
    "ReconcileError",
    "ValueConflictError",
]
