from wall_app.reconcile.models import derive_record_id
from wall_app.reconcile.pipeline.diff import diff
from wall_app.reconcile.pipeline.normalize import normalize
from wall_app.reconcile.pipeline.plan import build_migration_plan

from .conftest import COLLECTION, PARENT_ID


def test_unmatched_record_yields_additions_for_populated_fields(source_factory):
    source = source_factory(name="New Person", rank="", branch="Navy")

    entries = diff(source, None, parent_id=PARENT_ID)

    assert [(entry.field, entry.kind) for entry in entries] == [("name", "addition"), ("branch", "addition")]
    assert {entry.record_id for entry in entries} == {derive_record_id(PARENT_ID, "new person")}
    assert all(entry.current_value is None for entry in entries)


def test_equal_values_produce_no_entries(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", graduationYear=1995)

    assert diff(source_factory(name="Mary Smith", graduationYear="1995"), live) == []


def test_live_empty_field_becomes_update(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", rank="")

    entries = diff(source_factory(name="Mary Smith", rank="E-4 Corporal"), live)

    assert len(entries) == 1
    assert entries[0].kind == "update"
    assert entries[0].record_id == "a1"
    assert entries[0].proposed_value == "E-4 Corporal"


def test_source_empty_never_clears_live_data(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", rank="E-4 Corporal")

    assert diff(source_factory(name="Mary Smith", rank=""), live) == []


def test_punctuation_only_difference_on_formatting_field_is_formatting(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", rank="E-6  Staff Sergeant")

    entries = diff(source_factory(name="Mary Smith", rank="E6 staff sergeant"), live)

    assert [entry.kind for entry in entries] == ["formatting"]


def test_substantive_difference_on_formatting_field_is_conflict(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", rank="Captain")

    entries = diff(source_factory(name="Mary Smith", rank="Major"), live)

    assert [entry.kind for entry in entries] == ["conflict"]


def test_punctuation_difference_outside_formatting_fields_is_conflict(live_factory, source_factory):
    live = live_factory("a1", name="Mary Smith", militaryEntryDate="1990-01-01")

    entries = diff(source_factory(name="Mary Smith", militaryEntryDate="1990/01/01"), live)

    assert [entry.kind for entry in entries] == ["conflict"]


def test_whitespace_name_and_missing_branch_scenario(live_factory, source_factory):
    live = [live_factory("doe-1", name="John Doe", branch="", graduationYear=1998)]
    source = source_factory(row_number=1, name="John  Doe", branch="ARMY", graduationYear=1998)

    plan = build_migration_plan([source], live, collection_name=COLLECTION, parent_id=PARENT_ID)

    assert plan.conflicts == []
    assert plan.new == []
    assert [(entry.field, entry.kind, entry.current_value, entry.proposed_value) for entry in plan.updates] == [
        ("branch", "update", "", "Army")
    ]


def test_year_conflict_scenario_is_excluded_from_updates(live_factory, source_factory):
    live = [live_factory("smith-1", name="Mary Smith", graduationYear=1997)]
    source = normalize(source_factory(row_number=1, name="Mary Smith", graduationYear=1995))

    plan = build_migration_plan([source], live, collection_name=COLLECTION, parent_id=PARENT_ID)

    assert plan.updates == []
    assert len(plan.conflicts) == 1
    conflict = plan.conflicts[0]
    assert conflict.field == "graduationYear"
    assert conflict.kind == "conflict"
    assert (conflict.current_value, conflict.proposed_value) == (1997, 1995)
