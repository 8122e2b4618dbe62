"""
CLI for the reconciliation engine.

Every command that computes something writes a JSON artifact and prints a
JSON summary. Only ``apply`` and ``restore`` write to the document store, and
``apply`` only runs against a plan file that was written earlier.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask.cli import ScriptInfo

from wall_app.utils.reconcile import get_batch_size, get_collection_name, is_reconcile_enabled

from .adapters import CSVAdapterError, LegacyCSVAdapter
from .artifacts import artifact_path, load_plan, load_report, write_artifact
from .errors import ReconcileError
from .pipeline import (
    BackupManager,
    BatchApplier,
    build_dedupe_plan,
    build_instructions,
    build_migration_plan,
    export_records,
    load_backup,
    verify,
)
from .state import get_profile, get_record_filter, get_store
from .store import MAX_BATCH_OPS, StoreError
from .utils import resolve_artifact_directory


@click.group(name="reconcile")
@click.pass_context
def reconcile_cli(ctx):
    """Differential migration and duplicate reconciliation for wall items."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_reconcile_enabled(app):
        raise click.ClickException(
            "Reconciliation is disabled via RECONCILE_ENABLED=false. Enable it to run reconcile commands."
        )


def get_disabled_reconcile_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the engine is disabled.
    """

    @click.group(name="reconcile", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Reconcile commands are unavailable because RECONCILE_ENABLED=false.")

    return disabled_group


def _load_app(ctx):
    info = ctx.ensure_object(ScriptInfo)
    return info.load_app()


def _collection(app) -> str:
    collection = get_collection_name(app)
    if not collection:
        raise click.ClickException("RECONCILE_COLLECTION is not configured.")
    return collection


def _echo(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _query_live(app, collection: str):
    try:
        return get_store(app).query(collection, get_record_filter(app))
    except StoreError as exc:
        raise click.ClickException(f"Unable to read {collection}: {exc}") from exc


@reconcile_cli.command("diff")
@click.option(
    "--source",
    "source_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Legacy CSV export to compare against the live collection.",
)
@click.option("--output", type=click.Path(path_type=Path, dir_okay=False), help="Where to write the plan.")
@click.pass_context
def reconcile_diff(ctx, source_path: Path, output: Optional[Path]):
    """Compare a legacy export with live records and write a migration plan. No store writes."""
    app = _load_app(ctx)
    collection = _collection(app)
    record_filter = get_record_filter(app)

    try:
        with source_path.open("r", encoding="utf-8-sig", newline="") as handle:
            adapter = LegacyCSVAdapter(handle)
            sources = adapter.read_all()
    except CSVAdapterError as exc:
        raise click.ClickException(str(exc)) from exc

    live = _query_live(app, collection)
    plan = build_migration_plan(
        sources,
        live,
        collection_name=collection,
        parent_id=record_filter.parent_id,
        object_type=record_filter.object_type,
        profile=get_profile(app),
        malformed_rows=adapter.statistics.rows_malformed,
    )
    target = output or artifact_path(resolve_artifact_directory(app), "plan")
    try:
        write_artifact(target, {**plan.to_dict(), "source": adapter.statistics.to_dict()})
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    app.logger.info(
        "Wrote migration plan %s",
        target,
        extra={"reconcile_collection": collection, "reconcile_plan_id": plan.plan_id},
    )
    _echo(
        {
            "plan": str(target),
            "planId": plan.plan_id,
            "statistics": plan.statistics,
            "malformedRows": adapter.statistics.to_dict()["malformedRows"],
        }
    )


@reconcile_cli.command("dedupe")
@click.option("--output", type=click.Path(path_type=Path, dir_okay=False), help="Where to write the plan.")
@click.pass_context
def reconcile_dedupe(ctx, output: Optional[Path]):
    """Find duplicate live records and write a merge plan. No store writes."""
    app = _load_app(ctx)
    collection = _collection(app)
    record_filter = get_record_filter(app)

    live = _query_live(app, collection)
    plan = build_dedupe_plan(
        live,
        collection_name=collection,
        parent_id=record_filter.parent_id,
        object_type=record_filter.object_type,
    )
    target = output or artifact_path(resolve_artifact_directory(app), "dedupe")
    try:
        write_artifact(target, plan.to_dict())
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    app.logger.info(
        "Wrote dedupe plan %s",
        target,
        extra={"reconcile_collection": collection, "reconcile_plan_id": plan.plan_id},
    )
    _echo(
        {
            "plan": str(target),
            "planId": plan.plan_id,
            "groups": len(plan.groups),
            "deletedCount": plan.deleted_count,
            "matchKeys": [group.match_key for group in plan.groups],
        }
    )


@reconcile_cli.command("backup")
@click.option("--output", type=click.Path(path_type=Path, dir_okay=False), help="Where to write the backup.")
@click.pass_context
def reconcile_backup(ctx, output: Optional[Path]):
    """Snapshot the configured collection subset to a write-once backup file."""
    app = _load_app(ctx)
    collection = _collection(app)
    manager = BackupManager(get_store(app), resolve_artifact_directory(app))

    try:
        backup = manager.snapshot(collection, get_record_filter(app), path=output)
    except (ReconcileError, StoreError) as exc:
        raise click.ClickException(f"Backup failed: {exc}") from exc

    _echo(
        {
            "backup": str(output or manager.path_for(backup)),
            "collectionName": backup.collection_name,
            "timestamp": backup.timestamp,
            "count": len(backup.snapshot),
        }
    )


@reconcile_cli.command("apply")
@click.argument("plan_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option(
    "--backup",
    "backup_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Backup covering the records the plan modifies (defaults to the newest backup).",
)
@click.option(
    "--resume-from",
    "resume_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Apply report of an interrupted run of the same plan.",
)
@click.option("--batch-size", type=click.IntRange(1, MAX_BATCH_OPS), help="Write operations per batch.")
@click.pass_context
def reconcile_apply(
    ctx,
    plan_file: Path,
    backup_file: Optional[Path],
    resume_file: Optional[Path],
    batch_size: Optional[int],
):
    """Apply a reviewed plan file in bounded batches."""
    app = _load_app(ctx)
    collection = _collection(app)
    artifact_dir = resolve_artifact_directory(app)
    store = get_store(app)
    manager = BackupManager(store, artifact_dir)

    try:
        plan = load_plan(plan_file)
        if plan.collection_name != collection:
            raise click.ClickException(
                f"Plan targets collection '{plan.collection_name}' but RECONCILE_COLLECTION is '{collection}'."
            )

        backup_path = backup_file or manager.latest_backup(collection)
        if backup_path is None:
            raise click.ClickException(
                f"No backup found for collection '{collection}' in {artifact_dir}. "
                "Run `flask reconcile backup` before applying."
            )
        backup = load_backup(backup_path)

        start_index = 0
        if resume_file is not None:
            previous = load_report(resume_file)
            if previous.plan_id != plan.plan_id:
                raise click.ClickException(
                    f"Report {resume_file} belongs to plan {previous.plan_id}, not {plan.plan_id}."
                )
            start_index = previous.next_index

        instructions = build_instructions(plan)
        applier = BatchApplier(store, collection, batch_size=batch_size or get_batch_size(app))
        report = applier.apply(instructions, plan_id=plan.plan_id, start_index=start_index, backup=backup)
        report_path = write_artifact(artifact_path(artifact_dir, "apply-report"), report.to_dict())
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    app.logger.info(
        "Apply of plan %s finished with status %s",
        plan.plan_id,
        report.status,
        extra={
            "reconcile_collection": collection,
            "reconcile_plan_id": plan.plan_id,
            "reconcile_next_index": report.next_index,
        },
    )
    _echo({"report": str(report_path), "backup": str(backup_path), **report.to_dict()})
    try:
        report.raise_for_status()
    except ReconcileError as exc:
        raise click.ClickException(f"{exc} Report: {report_path}") from exc


@reconcile_cli.command("restore")
@click.argument("backup_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--batch-size", type=click.IntRange(1, MAX_BATCH_OPS), help="Write operations per batch.")
@click.pass_context
def reconcile_restore(ctx, backup_file: Path, yes: bool, batch_size: Optional[int]):
    """Upsert every record of a backup back into its collection."""
    app = _load_app(ctx)
    artifact_dir = resolve_artifact_directory(app)
    manager = BackupManager(get_store(app), artifact_dir)

    try:
        backup = load_backup(backup_file)
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    if not yes:
        click.confirm(
            f"Restore {len(backup.snapshot)} record(s) into '{backup.collection_name}' "
            f"from the backup taken at {backup.timestamp}? Current values of these records will be overwritten.",
            abort=True,
        )

    try:
        report = manager.restore(backup, batch_size=batch_size or get_batch_size(app))
        report_path = write_artifact(artifact_path(artifact_dir, "restore-report"), report.to_dict())
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo({"report": str(report_path), "backup": str(backup_file), **report.to_dict()})
    try:
        report.raise_for_status()
    except ReconcileError as exc:
        raise click.ClickException(f"{exc} Report: {report_path}") from exc


@reconcile_cli.command("verify")
@click.argument("before_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.argument("after_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option(
    "--plan",
    "plan_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Plan whose predicted counts the after snapshot is checked against.",
)
@click.pass_context
def reconcile_verify(ctx, before_file: Path, after_file: Path, plan_file: Optional[Path]):
    """Compare before/after backups and report divergences from the plan."""
    app = _load_app(ctx)
    try:
        before = load_backup(before_file)
        after = load_backup(after_file)
        plan = load_plan(plan_file) if plan_file is not None else None
        report = verify(plan, before, after)
        report_path = write_artifact(
            artifact_path(resolve_artifact_directory(app), "verify-report"),
            report.to_dict(),
        )
    except ReconcileError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo({"report": str(report_path), **report.to_dict()})
    if not report.ok:
        app.logger.warning(
            "Verification found %s divergence(s)",
            len(report.divergences),
            extra={"reconcile_plan_id": report.plan_id},
        )
        raise click.ClickException(f"Verification found {len(report.divergences)} divergence(s).")


@reconcile_cli.command("export")
@click.option("--output", type=click.Path(path_type=Path, dir_okay=False), help="Where to write the CSV.")
@click.pass_context
def reconcile_export(ctx, output: Optional[Path]):
    """Write the live records to CSV for offline review."""
    app = _load_app(ctx)
    collection = _collection(app)
    live = _query_live(app, collection)
    target = output or artifact_path(resolve_artifact_directory(app), f"export-{collection}", suffix=".csv")

    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        with target.open("x", encoding="utf-8", newline="") as handle:
            count = export_records(live, handle)
    except FileExistsError as exc:
        raise click.ClickException(f"{target} already exists.") from exc

    _echo({"export": str(target), "collectionName": collection, "count": count})
