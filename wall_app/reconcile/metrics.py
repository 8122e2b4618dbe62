"""Prometheus metrics helpers for the reconciliation engine."""

from __future__ import annotations

from typing import Literal, Mapping

try:
    from prometheus_client import Counter, Histogram

    _PROMETHEUS_AVAILABLE = True
except ImportError:  # pragma: no cover - metrics optional in some deployments
    Counter = Histogram = None  # type: ignore
    _PROMETHEUS_AVAILABLE = False


if _PROMETHEUS_AVAILABLE:
    _batch_counter = Counter(
        "reconcile_batches_total",
        "Write batches committed against the document store by status.",
        ["status"],
    )
    _batch_duration = Histogram(
        "reconcile_batch_duration_seconds",
        "Duration of a single batch commit in seconds.",
        buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
    )
    _instruction_counter = Counter(
        "reconcile_instructions_applied_total",
        "Write instructions applied by action.",
        ["action"],
    )
    _backup_counter = Counter(
        "reconcile_backups_written_total",
        "Backups written and verified.",
    )
    _backup_records = Counter(
        "reconcile_backup_records_total",
        "Records captured in backups.",
    )
    _restore_counter = Counter(
        "reconcile_records_restored_total",
        "Records replayed from a backup during restore.",
    )
else:  # pragma: no cover - fallbacks when prometheus_client missing
    _batch_counter = None
    _batch_duration = None
    _instruction_counter = None
    _backup_counter = None
    _backup_records = None
    _restore_counter = None


def record_batch(*, status: Literal["success", "failure"], duration_seconds: float) -> None:
    """Capture metrics for a batch commit."""

    if _batch_counter is not None:
        _batch_counter.labels(status=status).inc()
    if _batch_duration is not None:
        _batch_duration.observe(duration_seconds)


def record_instructions(by_action: Mapping[str, int]) -> None:
    if _instruction_counter is None:
        return
    for action, count in by_action.items():
        _instruction_counter.labels(action=action).inc(count)


def record_backup(record_count: int) -> None:
    if _backup_counter is not None:
        _backup_counter.inc()
    if _backup_records is not None:
        _backup_records.inc(record_count)


def record_restore(record_count: int) -> None:
    if _restore_counter is None:
        return
    _restore_counter.inc(record_count)
