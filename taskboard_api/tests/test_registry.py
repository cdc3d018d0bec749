import pytest

from taskboard_api import coordinator, registry
from taskboard_api.errors import DuplicateKey, HasTasks, NotFound, PartialMismatch, ProtectedDefault, ValidationError
from taskboard_api.models import DEFAULT_LANE_COLOR


def test_derive_status_key_strips_punctuation():
    assert registry.derive_status_key("My Lane!!") == "my-lane"
    assert registry.derive_status_key("Ready   for\tQA") == "ready-for-qa"
    assert registry.derive_status_key("Café Review") == "caf-review"


def test_create_lane_derives_key_and_appends_order(db, project):
    lane = registry.create_lane(db, project.id, "My Lane!!")

    assert lane.status_key == "my-lane"
    assert lane.order_index == 3
    assert lane.color == DEFAULT_LANE_COLOR
    assert lane.is_default is False
    assert lane.is_active is True


def test_create_lane_uses_explicit_key_and_color(db, project):
    lane = registry.create_lane(db, project.id, "Waiting on QA", color="#123abc", status_key="qa")

    assert lane.status_key == "qa"
    assert lane.color == "#123abc"


def test_create_lane_rejects_duplicate_key(db, project):
    with pytest.raises(DuplicateKey):
        registry.create_lane(db, project.id, "To Do", status_key="todo")
    with pytest.raises(DuplicateKey):
        registry.create_lane(db, project.id, "Completed")


def test_retired_lane_keeps_its_key(db, project):
    lane = registry.create_lane(db, project.id, "Review")
    registry.retire_lane(db, lane.id)

    with pytest.raises(DuplicateKey):
        registry.create_lane(db, project.id, "Review")


def test_create_lane_requires_usable_key(db, project):
    with pytest.raises(ValidationError):
        registry.create_lane(db, project.id, "!!!")
    with pytest.raises(ValidationError):
        registry.create_lane(db, project.id, "   ")


def test_create_lane_unknown_project(db, project):
    with pytest.raises(NotFound):
        registry.create_lane(db, project.id + 100, "Review")


def test_new_lane_order_follows_active_lanes_only(db, project):
    review = registry.create_lane(db, project.id, "Review")
    registry.retire_lane(db, review.id)

    blocked = registry.create_lane(db, project.id, "Blocked")

    assert blocked.order_index == 3
    active = [lane.order_index for lane in registry.list_active(db, project.id)]
    assert len(active) == len(set(active))


def test_rename_is_partial(db, project, lanes):
    todo = lanes["todo"]

    lane = registry.rename_lane(db, todo.id, color="#000000")
    assert lane.title == "To Do"
    assert lane.color == "#000000"

    lane = registry.rename_lane(db, todo.id, title="Backlog")
    assert lane.title == "Backlog"
    assert lane.color == "#000000"
    assert lane.status_key == "todo"


def test_rename_missing_lane(db, project):
    with pytest.raises(NotFound):
        registry.rename_lane(db, 9999, title="Nope")


def test_retire_blocked_until_lane_is_empty(db, project, lanes, owner):
    review = registry.create_lane(db, project.id, "Review")
    task = coordinator.create_task(db, project.id, owner, "Write docs", status_id=review.id)

    with pytest.raises(HasTasks):
        registry.retire_lane(db, review.id)

    coordinator.move_task(db, task.id, lanes["todo"].id, 0)
    registry.retire_lane(db, review.id)

    db.refresh(review)
    assert review.is_active is False
    assert review.id not in [lane.id for lane in registry.list_active(db, project.id)]


def test_retire_default_lane_is_refused(db, project, lanes):
    with pytest.raises(ProtectedDefault):
        registry.retire_lane(db, lanes["in-progress"].id)
    db.refresh(lanes["in-progress"])
    assert lanes["in-progress"].is_active is True


def test_retire_leaves_other_lane_order_alone(db, project, lanes):
    review = registry.create_lane(db, project.id, "Review")
    extra = registry.create_lane(db, project.id, "Extra")
    registry.retire_lane(db, review.id)

    orders = {lane.status_key: lane.order_index for lane in registry.list_active(db, project.id)}
    assert orders == {"todo": 0, "in-progress": 1, "completed": 2, "extra": extra.order_index}
    assert extra.order_index == 4


def test_reorder_assigns_list_positions(db, project, lanes):
    a, b, c = lanes["todo"], lanes["in-progress"], lanes["completed"]

    result = registry.reorder_lanes(db, project.id, [c.id, a.id, b.id])

    assert [lane.id for lane in result] == [c.id, a.id, b.id]
    assert [lane.order_index for lane in result] == [0, 1, 2]


def test_reorder_ignores_foreign_ids(db, project, lanes, owner):
    from taskboard_api.provisioning import create_project

    other = create_project(db, "Other", owner)
    foreign = registry.list_active(db, other.id)[0]
    a, b, c = lanes["todo"], lanes["in-progress"], lanes["completed"]

    result = registry.reorder_lanes(db, project.id, [b.id, foreign.id, a.id, c.id])

    assert [lane.id for lane in result] == [b.id, a.id, c.id]
    db.refresh(foreign)
    assert foreign.order_index == 0


def test_strict_reorder_rejects_foreign_ids_without_changes(db, project, lanes):
    a, b, c = lanes["todo"], lanes["in-progress"], lanes["completed"]

    with pytest.raises(PartialMismatch) as excinfo:
        registry.reorder_lanes(db, project.id, [c.id, 424242, a.id, b.id], strict=True)

    assert excinfo.value.unknown_ids == [424242]
    assert [lane.id for lane in registry.list_active(db, project.id)] == [a.id, b.id, c.id]


def test_reorder_unknown_project(db):
    with pytest.raises(NotFound):
        registry.reorder_lanes(db, 12345, [1, 2])


def test_reorder_rejects_repeated_ids(db, project, lanes):
    a = lanes["todo"]

    with pytest.raises(ValidationError):
        registry.reorder_lanes(db, project.id, [a.id, a.id, a.id])

    assert [lane.order_index for lane in registry.list_active(db, project.id)] == [0, 1, 2]


def test_reorder_appends_omitted_lanes_in_previous_order(db, project, lanes):
    a, b, c = lanes["todo"], lanes["in-progress"], lanes["completed"]

    result = registry.reorder_lanes(db, project.id, [c.id])

    assert [(lane.id, lane.order_index) for lane in result] == [(c.id, 0), (a.id, 1), (b.id, 2)]


def test_reorder_renumbers_densely_after_retire(db, project, lanes):
    review = registry.create_lane(db, project.id, "Review")
    extra = registry.create_lane(db, project.id, "Extra")
    registry.retire_lane(db, review.id)
    a, b = lanes["todo"], lanes["in-progress"]

    result = registry.reorder_lanes(db, project.id, [extra.id, review.id, b.id])

    assert [lane.id for lane in result] == [extra.id, b.id, a.id, lanes["completed"].id]
    assert [lane.order_index for lane in result] == [0, 1, 2, 3]
