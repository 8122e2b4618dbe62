"""
Write-once backups of the records a run may modify.

A backup is written with exclusive-create semantics, made read-only and read
back before it is handed to the caller. Only a backup that survived that round
trip is accepted by the applier as a precondition for destructive writes.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from ..artifacts import artifact_path, read_artifact, timestamp_token, write_artifact
from ..errors import ArtifactError
from ..metrics import record_backup, record_restore
from ..models import ApplyReport, Backup, WriteOp, compute_checksum
from ..store import MAX_BATCH_OPS, DocumentStore, RecordFilter
from .apply import BatchApplier
from .verify import snapshot_differences

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup"
_TOKEN_PATTERN = re.compile(r"\d{4}-?\d{2}-?\d{2}T[0-9A-Za-z-]*")


def load_backup(path: Path | str) -> Backup:
    """Read a backup artifact and check its declared count against its snapshot."""

    payload = read_artifact(path)
    try:
        backup = Backup.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise ArtifactError(f"Backup {path} is malformed: {exc}") from exc
    if not backup.collection_name:
        raise ArtifactError(f"Backup {path} does not name a collection.")
    declared = payload.get("count")
    if declared is not None and declared != len(backup.snapshot):
        raise ArtifactError(f"Backup {path} declares {declared} records but holds {len(backup.snapshot)}.")
    return backup


class BackupManager:
    def __init__(self, store: DocumentStore, artifact_dir: Path | str) -> None:
        self.store = store
        self.artifact_dir = Path(artifact_dir)

    def path_for(self, backup: Backup) -> Path:
        return artifact_path(
            self.artifact_dir,
            f"{BACKUP_PREFIX}-{backup.collection_name}",
            timestamp_token(backup.timestamp),
        )

    def snapshot(
        self,
        collection: str,
        record_filter: RecordFilter | None = None,
        *,
        path: Path | str | None = None,
    ) -> Backup:
        """Capture ``collection`` (or the filtered subset), persist it and verify the written file."""

        records = self.store.query(collection, record_filter)
        backup = Backup(
            timestamp=datetime.now(timezone.utc).isoformat(),
            collection_name=collection,
            snapshot=tuple(records),
            parent_id=record_filter.parent_id if record_filter else None,
            object_type=record_filter.object_type if record_filter else None,
        )
        target = Path(path) if path is not None else self.path_for(backup)
        write_artifact(target, backup.to_dict(), read_only=True)
        self.verify(backup, target)

        record_backup(len(records))
        logger.info(
            "Wrote backup of %s record(s) from %s to %s",
            len(records),
            collection,
            target,
            extra={"reconcile_collection": collection, "reconcile_backup_path": str(target)},
        )
        return backup

    def verify(self, backup: Backup, path: Path | str) -> Backup:
        """Re-read ``path`` and confirm it holds exactly the records of ``backup``."""

        written = load_backup(path)
        if written.collection_name != backup.collection_name:
            raise ArtifactError(f"Backup {path} names collection '{written.collection_name}'.")
        if len(written.snapshot) != len(backup.snapshot) or written.record_ids() != backup.record_ids():
            raise ArtifactError(f"Backup {path} does not match the captured snapshot.")
        differences = snapshot_differences(backup, written)
        if differences:
            raise ArtifactError(f"Backup {path} does not read back intact: {differences[0]}")
        return written

    def latest_backup(self, collection: str) -> Path | None:
        """Newest backup artifact for ``collection`` in the artifact directory."""

        if not self.artifact_dir.exists():
            return None
        prefix = f"{BACKUP_PREFIX}-{collection}-"
        # "wall" must not pick up "backup-wall-items-..."
        candidates = sorted(
            path
            for path in self.artifact_dir.glob(f"{prefix}*.json")
            if _TOKEN_PATTERN.fullmatch(path.stem[len(prefix) :])
        )
        return candidates[-1] if candidates else None

    def restore(self, backup: Backup, *, batch_size: int = MAX_BATCH_OPS) -> ApplyReport:
        """
        Upsert every record of ``backup``.

        Records created after the backup was taken are left in place.
        """

        instructions: Sequence[WriteOp] = [WriteOp("set", record.id, record=record) for record in backup.snapshot]
        plan_id = "restore-" + compute_checksum(backup.to_dict())
        logger.warning(
            "Restoring %s record(s) into %s from backup taken at %s",
            len(instructions),
            backup.collection_name,
            backup.timestamp,
            extra={"reconcile_collection": backup.collection_name},
        )
        applier = BatchApplier(self.store, backup.collection_name, batch_size=batch_size)
        report = applier.apply(instructions, plan_id=plan_id)
        record_restore(report.applied_count)
        return report


__all__ = ["BackupManager", "load_backup"]
