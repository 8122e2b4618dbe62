import pytest

from wall_app.reconcile.models import DuplicateGroup, is_empty
from wall_app.reconcile.pipeline.apply import BatchApplier, build_merge_instructions
from wall_app.reconcile.pipeline.backup import BackupManager
from wall_app.reconcile.pipeline.dedupe import build_dedupe_plan, find_duplicates, survivor_priority
from wall_app.reconcile.store import InMemoryStore, RecordFilter

from .conftest import COLLECTION, PARENT_ID


@pytest.fixture
def georgia_pair(live_factory):
    with_image = live_factory(
        "g-img",
        images=[{"url": "https://img.example/georgia.jpg"}],
        created_offset_days=5,
        name="Georgia Ash",
        branch="Navy",
        rank="E-4",
    )
    without_image = live_factory(
        "g-full",
        created_offset_days=1,
        name="georgia  ash",
        branch="Army",
        rank="E-5",
        graduationYear="1988",
        description="Served two tours.",
    )
    return with_image, without_image


def test_image_outranks_populated_field_count(georgia_pair):
    with_image, without_image = georgia_pair
    assert with_image.populated_count == 3
    assert without_image.populated_count == 5

    groups = find_duplicates([without_image, with_image])

    assert len(groups) == 1
    group = groups[0]
    assert group.match_key == "georgia ash"
    assert group.survivor_id == "g-img"
    assert group.deleted_ids == ("g-full",)


def test_merged_fields_union_every_populated_field(georgia_pair):
    group = find_duplicates(list(georgia_pair))[0]

    assert group.merged_fields == {
        "name": "Georgia Ash",
        "branch": "Navy",
        "rank": "E-4",
        "graduationYear": "1988",
        "description": "Served two tours.",
    }
    assert group.merged_images == ({"url": "https://img.example/georgia.jpg"},)


def test_no_populated_value_is_lost_in_a_merge(live_factory):
    members = [
        live_factory("m1", name="Pat Quinn", rank="", branch="Navy"),
        live_factory("m2", name="Pat Quinn", rank="E-2", description=""),
        live_factory("m3", name="PAT QUINN", description="Bio", militaryExitDate="1970"),
    ]

    group = find_duplicates(members)[0]

    for member in members:
        for name, value in member.fields.items():
            if not is_empty(value):
                assert not is_empty(group.merged_fields[name])


def test_tie_breaks_fall_through_to_creation_time_then_id(live_factory):
    older = live_factory("z9", created_offset_days=1, name="Lee Park")
    newer = live_factory("a1", created_offset_days=9, name="Lee Park")
    undated = live_factory("a0", created_offset_days=None, name="Lee Park")

    assert sorted([newer, undated, older], key=survivor_priority) == [older, newer, undated]

    same_time = [live_factory("b2", name="Lee Park"), live_factory("b1", name="Lee Park")]
    assert find_duplicates(same_time)[0].survivor_id == "b1"


def test_singletons_and_nameless_records_are_not_groups(live_factory):
    records = [live_factory("x1", name="Solo"), live_factory("x2", name=""), live_factory("x3", name="  ")]

    assert find_duplicates(records) == []


def test_merge_instructions_update_survivor_before_deletes(georgia_pair):
    group = find_duplicates(list(georgia_pair))[0]

    instructions = build_merge_instructions([group])

    assert [(op.action, op.record_id) for op in instructions] == [("update", "g-img"), ("delete", "g-full")]
    assert instructions[0].fields == {"graduationYear": "1988", "description": "Served two tours."}
    assert instructions[0].images is None


def test_group_from_dict_rejects_foreign_survivor(georgia_pair):
    payload = find_duplicates(list(georgia_pair))[0].to_dict()
    payload["survivorId"] = "someone-else"

    with pytest.raises(ValueError):
        DuplicateGroup.from_dict(payload)


def test_dedupe_is_idempotent_after_merge(georgia_pair, live_factory, tmp_path):
    records = [*georgia_pair, live_factory("k1", name="Kim Wu"), live_factory("k2", name="Kim  Wu", rank="E-1")]
    store = InMemoryStore(records, collection=COLLECTION)
    record_filter = RecordFilter(parent_id=PARENT_ID)
    backup = BackupManager(store, tmp_path).snapshot(COLLECTION, record_filter)

    plan = build_dedupe_plan(store.query(COLLECTION, record_filter), collection_name=COLLECTION, parent_id=PARENT_ID)
    report = BatchApplier(store, COLLECTION).apply_plan(plan, backup=backup)

    assert report.succeeded
    after = store.query(COLLECTION, record_filter)
    assert len(after) == 2
    assert find_duplicates(after) == []
    survivor = store.get(COLLECTION, "g-img")
    assert survivor.fields["description"] == "Served two tours."
    assert survivor.images == ({"url": "https://img.example/georgia.jpg"},)
