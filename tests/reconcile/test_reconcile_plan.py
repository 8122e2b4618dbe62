from wall_app.reconcile.models import MigrationPlan
from wall_app.reconcile.pipeline.plan import build_migration_plan, fold_source_duplicates

from .conftest import COLLECTION, PARENT_ID


def test_source_rows_sharing_a_key_are_folded(source_factory):
    first = source_factory(row_number=1, name="Ann Lee", rank="", branch="Navy")
    second = source_factory(row_number=2, name="ann  lee", rank="E-3", branch="Army")

    folded, count = fold_source_duplicates([first, second])

    assert count == 1
    assert len(folded) == 1
    assert folded[0].fields == {"name": "Ann Lee", "rank": "E-3", "branch": "Navy"}
    assert folded[0].row_number == 1


def test_plan_statistics_and_classification(live_factory, source_factory):
    live = [
        live_factory("a1", name="John Doe", branch=""),
        live_factory("a2", name="Mary Smith", graduationYear=1997),
        live_factory("d1", name="Georgia Ash"),
        live_factory("d2", name="Georgia  Ash"),
        live_factory("u1", name="Same Person", rank="E-4"),
    ]
    sources = [
        source_factory(1, name="John Doe", branch="army"),
        source_factory(2, name="Mary Smith", graduationYear="1995"),
        source_factory(3, name="Georgia Ash", rank="O-3"),
        source_factory(4, name="New Person", branch="Navy"),
        source_factory(5, name="New Person", rank="E-2"),
        source_factory(6, name="Same Person", rank="E-4"),
    ]

    plan = build_migration_plan(
        sources, live, collection_name=COLLECTION, parent_id=PARENT_ID, malformed_rows=2, created_at="2024-01-01"
    )

    assert [record.match_key for record in plan.new] == ["new person"]
    assert plan.new[0].fields == {"name": "New Person", "branch": "Navy", "rank": "E-2"}
    assert [(entry.record_id, entry.field) for entry in plan.updates] == [("a1", "branch")]
    assert [(entry.record_id, entry.field) for entry in plan.conflicts] == [("a2", "graduationYear")]
    assert [(item.match_key, item.candidate_ids) for item in plan.ambiguous] == [("georgia ash", ("d1", "d2"))]
    assert plan.statistics["sourceRecords"] == 6
    assert plan.statistics["sourceMalformed"] == 2
    assert plan.statistics["sourceDuplicatesFolded"] == 1
    assert plan.statistics["matched"] == 3
    assert plan.statistics["unchanged"] == 1
    assert plan.statistics["ambiguous"] == 1


def test_plan_lists_normalization_issues(source_factory):
    plan = build_migration_plan(
        [source_factory(7, name="Lee Park", branch="unknwon", graduationYear="2040")],
        [],
        collection_name=COLLECTION,
        parent_id=PARENT_ID,
    )

    reasons = {(issue["field"], issue["reason"]) for issue in plan.issues}
    assert reasons == {("branch", "typo_corrected"), ("graduationYear", "out_of_range")}
    assert all(issue["rowNumber"] == 7 for issue in plan.issues)


def test_plan_round_trips_through_its_artifact_form(live_factory, source_factory):
    plan = build_migration_plan(
        [source_factory(1, name="John Doe", branch="Army"), source_factory(2, name="Brand New")],
        [live_factory("a1", name="John Doe")],
        collection_name=COLLECTION,
        parent_id=PARENT_ID,
        object_type="veteran",
    )

    restored = MigrationPlan.from_dict(plan.to_dict())

    assert restored.plan_id == plan.plan_id
    assert restored.object_type == "veteran"
    assert [record.fields for record in restored.new] == [record.fields for record in plan.new]
    assert restored.updates == plan.updates


def test_plan_id_changes_when_instructions_change(source_factory):
    plan_a = build_migration_plan([source_factory(1, name="A Person")], [], collection_name=COLLECTION)
    plan_b = build_migration_plan([source_factory(1, name="B Person")], [], collection_name=COLLECTION)

    assert plan_a.plan_id != plan_b.plan_id
