import json
from datetime import datetime, timezone

import pytest

from wall_app.reconcile.artifacts import load_plan, load_report, timestamp_token, write_artifact
from wall_app.reconcile.errors import ArtifactError
from wall_app.reconcile.models import ApplyReport, DedupePlan, MigrationPlan


def test_timestamp_tokens_sort_chronologically():
    early = timestamp_token(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    late = timestamp_token(datetime(2024, 11, 2, 3, 4, 5, tzinfo=timezone.utc))

    assert early < late
    assert ":" not in timestamp_token("2024-01-02T03:04:05.000+00:00")


def test_write_artifact_refuses_to_overwrite(tmp_path):
    target = tmp_path / "nested" / "plan.json"
    write_artifact(target, {"kind": "dedupe"})

    with pytest.raises(ArtifactError):
        write_artifact(target, {"kind": "other"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"kind": "dedupe"}


def test_load_plan_detects_kind(tmp_path):
    migration = write_artifact(tmp_path / "m.json", MigrationPlan("wall_items", "w", "2024-01-01").to_dict())
    dedupe = write_artifact(tmp_path / "d.json", DedupePlan("wall_items", "w", "2024-01-01").to_dict())

    assert isinstance(load_plan(migration), MigrationPlan)
    assert isinstance(load_plan(dedupe), DedupePlan)


@pytest.mark.parametrize(
    "payload",
    [
        {"kind": "mystery", "collectionName": "wall_items"},
        {"kind": "migration"},
        {"kind": "migration", "collectionName": "wall_items", "updates": [{"kind": "bogus"}]},
    ],
)
def test_load_plan_rejects_malformed_payloads(tmp_path, payload):
    path = write_artifact(tmp_path / "bad.json", payload)

    with pytest.raises(ArtifactError):
        load_plan(path)


def test_unreadable_artifacts_raise(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")

    with pytest.raises(ArtifactError):
        load_plan(broken)
    with pytest.raises(ArtifactError):
        load_plan(tmp_path / "missing.json")


def test_apply_report_round_trip(tmp_path):
    report = ApplyReport(
        plan_id="abc",
        collection_name="wall_items",
        total_instructions=12,
        batch_size=5,
        next_index=5,
        batches_committed=1,
        status="failed",
        failed_batch=2,
        error="boom",
        applied_by_action={"set": 5},
    )
    path = write_artifact(tmp_path / "report.json", report.to_dict())

    loaded = load_report(path)

    assert loaded == report
    assert loaded.applied_count == 5
