from datetime import datetime, timezone

import pytest

from wall_app.reconcile.errors import BatchCommitFailure, MissingBackupError, ValueConflictError
from wall_app.reconcile.models import Backup, DiffEntry, MigrationPlan, SourceRecord, WriteOp, derive_record_id
from wall_app.reconcile.pipeline.apply import BatchApplier, build_plan_instructions, require_backup
from wall_app.reconcile.pipeline.backup import BackupManager
from wall_app.reconcile.pipeline.plan import build_migration_plan
from wall_app.reconcile.store import InMemoryStore, RecordFilter

from .conftest import COLLECTION, PARENT_ID


def _new_people(count: int) -> list[SourceRecord]:
    return [SourceRecord({"name": f"Person {index:04d}", "branch": "Navy"}, row_number=index) for index in range(count)]


def _creates(count: int) -> list[WriteOp]:
    plan = MigrationPlan(COLLECTION, PARENT_ID, "2024-01-01", new=_new_people(count))
    return build_plan_instructions(plan)


def test_instructions_are_split_into_bounded_batches():
    store = InMemoryStore()
    instructions = _creates(1201)

    report = BatchApplier(store, COLLECTION).apply(instructions, plan_id="p-1")

    assert report.succeeded
    assert store.batches_written == 3
    assert report.batches_committed == 3
    assert report.next_index == 1201
    assert report.applied_by_action == {"set": 1201}
    assert len(store.query(COLLECTION)) == 1201


def test_batch_size_above_store_limit_is_refused():
    with pytest.raises(ValueError):
        BatchApplier(InMemoryStore(), COLLECTION, batch_size=501)


def test_failed_batch_stops_the_run_and_reports_resume_point(flaky_store_factory):
    store = flaky_store_factory(fail_on_batch=2)
    instructions = _creates(25)

    report = BatchApplier(store, COLLECTION, batch_size=10).apply(instructions, plan_id="p-2")

    assert report.status == "failed"
    assert report.failed_batch == 2
    assert report.batches_committed == 1
    assert report.next_index == 10
    assert "deadline exceeded" in report.error
    assert len(store.query(COLLECTION)) == 10
    with pytest.raises(BatchCommitFailure) as excinfo:
        report.raise_for_status()
    assert excinfo.value.report is report

    resumed = BatchApplier(store, COLLECTION, batch_size=10).apply(
        instructions, plan_id="p-2", start_index=report.next_index
    )

    assert resumed.succeeded
    assert resumed.start_index == 10
    assert resumed.applied_count == 15
    assert len(store.query(COLLECTION)) == 25


def test_reapplied_create_keeps_later_additions():
    store = InMemoryStore()
    plan = MigrationPlan(
        COLLECTION, PARENT_ID, "2024-03-01T12:00:00+00:00", new=[SourceRecord({"name": "Ann Lee"}, row_number=1)]
    )
    record_id = derive_record_id(PARENT_ID, "ann lee")
    applier = BatchApplier(store, COLLECTION)

    applier.apply(build_plan_instructions(plan), plan_id=plan.plan_id).raise_for_status()
    created = store.get(COLLECTION, record_id)
    assert created.created_at == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    store.batch_write(
        COLLECTION,
        [WriteOp("update", record_id, fields={"rank": "Sgt"}, images=({"url": "https://img.example/ann.png"},))],
    )
    applier.apply(build_plan_instructions(plan), plan_id=plan.plan_id).raise_for_status()

    reapplied = store.get(COLLECTION, record_id)
    assert reapplied.fields == {"name": "Ann Lee", "rank": "Sgt"}
    assert reapplied.images == ({"url": "https://img.example/ann.png"},)
    assert reapplied.created_at == created.created_at


def test_plan_applied_twice_reaches_the_same_state(live_factory, source_factory, tmp_path):
    store = InMemoryStore(
        [live_factory("a1", name="John Doe", branch=""), live_factory("a2", name="Mary Smith", graduationYear=1997)],
        collection=COLLECTION,
    )
    record_filter = RecordFilter(parent_id=PARENT_ID)
    plan = build_migration_plan(
        [
            source_factory(1, name="John Doe", branch="army"),
            source_factory(2, name="Mary Smith", graduationYear="1995"),
            source_factory(3, name="Brand New", rank="E-1"),
        ],
        store.query(COLLECTION, record_filter),
        collection_name=COLLECTION,
        parent_id=PARENT_ID,
    )
    backup = BackupManager(store, tmp_path).snapshot(COLLECTION, record_filter)
    applier = BatchApplier(store, COLLECTION)

    applier.apply_plan(plan, backup=backup).raise_for_status()
    first = store.query(COLLECTION)
    applier.apply_plan(plan, backup=backup).raise_for_status()
    second = store.query(COLLECTION)

    assert first == second
    fields = {record.id: dict(record.fields) for record in second}
    assert len(fields) == 3
    assert fields["a1"]["branch"] == "Army"
    assert fields["a2"]["graduationYear"] == 1997
    assert fields[derive_record_id(PARENT_ID, "brand new")] == {"name": "Brand New", "rank": "E-1"}


def test_conflicts_are_never_turned_into_instructions():
    conflict = DiffEntry("mary smith", "graduationYear", 1997, 1995, "conflict", "a2")
    plan = MigrationPlan(COLLECTION, PARENT_ID, "2024-01-01", conflicts=[conflict])

    assert build_plan_instructions(plan) == []


def test_conflict_smuggled_into_updates_is_rejected():
    conflict = DiffEntry("mary smith", "graduationYear", 1997, 1995, "conflict", "a2")
    plan = MigrationPlan(COLLECTION, PARENT_ID, "2024-01-01", updates=[conflict])

    with pytest.raises(ValueConflictError) as excinfo:
        build_plan_instructions(plan)

    assert excinfo.value.entries == (conflict,)


def test_updates_are_grouped_per_record():
    plan = MigrationPlan(
        COLLECTION,
        PARENT_ID,
        "2024-01-01",
        updates=[
            DiffEntry("john doe", "branch", "", "Army", "update", "a1"),
            DiffEntry("jane roe", "rank", None, "E-2", "update", "b1"),
            DiffEntry("john doe", "name", "john doe", "John Doe", "formatting", "a1"),
        ],
    )

    instructions = build_plan_instructions(plan)

    assert [(op.action, op.record_id, dict(op.fields)) for op in instructions] == [
        ("update", "a1", {"branch": "Army", "name": "John Doe"}),
        ("update", "b1", {"rank": "E-2"}),
    ]


def test_destructive_apply_without_backup_writes_nothing(live_factory):
    store = InMemoryStore([live_factory("a1", name="John Doe")], collection=COLLECTION)
    instructions = [WriteOp("update", "a1", fields={"rank": "E-1"}), WriteOp("delete", "a1")]

    with pytest.raises(MissingBackupError):
        BatchApplier(store, COLLECTION).apply(instructions, plan_id="p-3")

    assert store.batches_written == 0
    assert store.get(COLLECTION, "a1").fields == {"name": "John Doe"}


def test_backup_must_cover_every_touched_record(live_factory):
    backup = Backup("2024-01-01T00:00:00+00:00", COLLECTION, (live_factory("a1", name="John Doe"),))
    instructions = [WriteOp("delete", "a1"), WriteOp("delete", "b7")]

    with pytest.raises(MissingBackupError) as excinfo:
        require_backup(COLLECTION, instructions, backup)

    assert excinfo.value.missing_ids == ("b7",)


def test_backup_of_another_collection_does_not_count(live_factory):
    backup = Backup("2024-01-01T00:00:00+00:00", "wall-items", (live_factory("a1", name="John Doe"),))

    with pytest.raises(MissingBackupError):
        require_backup(COLLECTION, [WriteOp("delete", "a1")], backup)


def test_create_only_plans_need_no_backup():
    store = InMemoryStore()

    report = BatchApplier(store, COLLECTION).apply(_creates(3), plan_id="p-4")

    assert report.succeeded
    assert len(store.query(COLLECTION)) == 3
