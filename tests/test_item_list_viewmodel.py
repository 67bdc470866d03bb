# tests/test_item_list_viewmodel.py
from __future__ import annotations

from typing import List

import pytest

from focuslog.models.entities import ItemKind, PriorityTier
from focuslog.models.store import SiblingFilter
from focuslog.services.sync_bus import CompletionBus, CompletionEvent
from focuslog.viewmodels.item_list_viewmodel import ItemListViewModel

from conftest import FIXED_NOW, StubItemRepo, make_item

HIGH, MEDIUM, LOW = PriorityTier.HIGH, PriorityTier.MEDIUM, PriorityTier.LOW
MED = SiblingFilter(None, MEDIUM)


@pytest.fixture()
def repo() -> StubItemRepo:
    return StubItemRepo([
        make_item("a0", 0), make_item("a1", 1), make_item("a2", 2),
        make_item("P", 0, tier=HIGH),
        make_item("k0", 0, parent="P"), make_item("k1", 1, parent="P"),
        make_item("kd", 2, parent="P", done=True),
    ])


@pytest.fixture()
def bus() -> CompletionBus:
    return CompletionBus()


@pytest.fixture()
def ticks() -> List[float]:
    return [0.0]


@pytest.fixture()
def vm(repo, bus, clock, ticks) -> ItemListViewModel:
    model = ItemListViewModel(repo, bus, view_name="log", clock=clock, monotonic=lambda: ticks[0])
    model.reload()
    repo.calls.clear()
    return model


@pytest.fixture()
def errors(vm) -> List[str]:
    out: List[str] = []
    vm.errorRaised.connect(out.append)
    return out


def group(vm: ItemListViewModel, flt: SiblingFilter = MED):
    return [it.id for it in vm.store.sibling_group(flt)]


def persisted(repo: StubItemRepo, *ids):
    return [repo.rows[i].sort_order for i in ids]


def test_reload_loads_store_and_notifies(repo, bus, clock):
    model = ItemListViewModel(repo, bus, clock=clock)
    hits = []
    model.displayChanged.connect(lambda: hits.append(1))
    model.reload()
    assert hits == [1]
    assert len(model.store) == 7
    assert repo.ops() == ["fetch_items"]


def test_reload_repairs_gapped_groups(clock):
    repo = StubItemRepo([make_item("x", 0), make_item("y", 4)])
    model = ItemListViewModel(repo, clock=clock)
    model.reload()
    assert model.ordering.validate_group(MED)
    assert repo.rows["y"].sort_order == 1


def test_flattened_display(vm: ItemListViewModel):
    assert [r.key for r in vm.flattened_display()] == ["tier-high", "P", "tier-medium", "a0", "a1", "a2"]
    vm.toggle_expanded("P")
    assert [r.key for r in vm.flattened_display()] == [
        "tier-high", "P", "k0", "k1", "kd", "add-P", "tier-medium", "a0", "a1", "a2",
    ]


def test_toggle_tier_collapsed_hides_items(vm: ItemListViewModel):
    vm.toggle_tier_collapsed(MEDIUM)
    assert [r.key for r in vm.flattened_display()] == ["tier-high", "P", "tier-medium"]


# --- reorder ---------------------------------------------------------------

def test_drag_commit_updates_store_then_persists(vm: ItemListViewModel, repo: StubItemRepo):
    hits = []
    vm.displayChanged.connect(lambda: hits.append(1))
    assert vm.on_drag_commit("a2", "a0")
    assert group(vm) == ["a2", "a0", "a1"]
    assert persisted(repo, "a2", "a0", "a1") == [0, 1, 2]
    assert hits == [1]
    assert repo.ops() == ["update_sort_orders"]


def test_noop_drag_commit_does_not_persist(vm: ItemListViewModel, repo: StubItemRepo):
    assert not vm.on_drag_commit("a1", "a1")
    assert repo.calls == []


def test_rejected_drag_commit_does_not_persist(vm: ItemListViewModel, repo: StubItemRepo):
    assert not vm.on_drag_commit("k0", "a1")
    assert repo.calls == []


def test_cross_tier_drag_persists_tier(vm: ItemListViewModel, repo: StubItemRepo):
    vm.on_drag_commit("a0", "P")
    assert group(vm, SiblingFilter(None, HIGH)) == ["a0", "P"]
    assert group(vm) == ["a1", "a2"]
    assert repo.rows["a0"].priority_tier is HIGH
    assert persisted(repo, "a0", "P", "a1", "a2") == [0, 1, 0, 1]
    assert repo.ops() == ["update_item", "update_sort_orders"]


def test_failed_reorder_reports_and_refetches(vm: ItemListViewModel, repo: StubItemRepo, errors):
    repo.fail_on = {"update_sort_orders"}
    vm.on_drag_commit("a2", "a0")
    assert len(errors) == 1
    assert errors[0].startswith("Failed to save order")
    assert "fetch_items" in repo.ops()
    assert group(vm) == ["a0", "a1", "a2"]


def test_flat_move_resolves_through_projector(vm: ItemListViewModel, repo: StubItemRepo):
    # rows: 0 tier-high, 1 P, 2 tier-medium, 3 a0, 4 a1, 5 a2
    assert vm.on_flat_move(5, 3)
    assert group(vm) == ["a2", "a0", "a1"]
    assert not vm.on_flat_move(0, 3)
    assert not vm.on_flat_move(42, 0)


def test_flat_move_of_child_outside_parent_is_ignored(vm: ItemListViewModel, repo: StubItemRepo):
    vm.toggle_expanded("P")
    # 2 is k0; 8 is inside the medium tier
    assert not vm.on_flat_move(2, 8)
    assert repo.calls == []


# --- drag preview ----------------------------------------------------------

def test_drag_preview_is_throttled_and_commits_on_end(vm: ItemListViewModel, repo: StubItemRepo, ticks):
    vm.begin_drag("a2")
    first = vm.drag_over("a1")
    assert first is not None and not first.is_noop
    ticks[0] = 0.1
    assert vm.drag_over("a0") is first
    ticks[0] = 0.3
    vm.drag_over("a0")
    assert group(vm) == ["a0", "a1", "a2"]
    assert repo.calls == []

    assert vm.end_drag()
    assert group(vm) == ["a2", "a0", "a1"]


def test_cancelled_drag_changes_nothing(vm: ItemListViewModel, repo: StubItemRepo):
    vm.begin_drag("a2")
    vm.drag_over("a0")
    vm.cancel_drag()
    assert not vm.end_drag()
    assert group(vm) == ["a0", "a1", "a2"]
    assert repo.calls == []


def test_completed_item_cannot_start_drag(vm: ItemListViewModel):
    vm.begin_drag("kd")
    assert vm.drag_over("k0") is None


# --- completion ------------------------------------------------------------

def test_toggle_parent_persists_cascade_and_broadcasts(vm: ItemListViewModel, repo: StubItemRepo, bus):
    events: List[CompletionEvent] = []
    bus.completionChanged.connect(events.append)
    vm.on_toggle_completion("P")

    assert all(repo.rows[i].is_completed for i in ("P", "k0", "k1", "kd"))
    assert repo.rows["P"].previous_child_snapshot == [False, False, True]
    assert repo.rows["P"].completed_at == FIXED_NOW
    assert [(e.item_id, e.is_completed, e.origin_view, e.children_changed) for e in events] == [
        ("P", True, "log", True),
    ]


def test_toggle_child_announces_child_and_parent(vm: ItemListViewModel, bus):
    events: List[CompletionEvent] = []
    bus.completionChanged.connect(events.append)
    vm.on_toggle_completion("k0")
    vm.on_toggle_completion("k1")
    assert [e.item_id for e in events] == ["k0", "k1", "P"]
    assert vm.get_item("P").is_completed


def test_completion_keeps_active_groups_dense(vm: ItemListViewModel, repo: StubItemRepo):
    vm.on_toggle_completion("a0")
    assert group(vm) == ["a1", "a2"]
    assert vm.ordering.validate_group(MED)
    assert persisted(repo, "a1", "a2") == [0, 1]


def test_reopened_item_rejoins_at_end_of_group(vm: ItemListViewModel, repo: StubItemRepo):
    vm.on_toggle_completion("a0")
    vm.on_toggle_completion("a0")
    assert group(vm) == ["a1", "a2", "a0"]
    assert persisted(repo, "a1", "a2", "a0") == [0, 1, 2]

    vm.on_toggle_completion("k0")
    vm.on_toggle_completion("k0")
    assert group(vm, SiblingFilter("P")) == ["k1", "k0"]
    assert persisted(repo, "k1", "k0") == [0, 1]


def test_failed_completion_reports_and_refetches(vm: ItemListViewModel, repo: StubItemRepo, bus, errors):
    events = []
    bus.completionChanged.connect(events.append)
    repo.fail_on = {"update_item"}
    vm.on_toggle_completion("a0")
    assert errors and errors[0].startswith("Failed to update completion")
    assert not vm.get_item("a0").is_completed
    assert events == []


def test_other_views_follow_completion(repo: StubItemRepo, bus, clock):
    log_vm = ItemListViewModel(repo, bus, view_name="log", clock=clock)
    today_vm = ItemListViewModel(repo, bus, view_name="today", clock=clock)
    log_vm.reload()
    today_vm.reload()
    repo.calls.clear()

    log_vm.on_toggle_completion("P")

    assert today_vm.get_item("P").is_completed
    assert today_vm.get_item("P").completed_at == FIXED_NOW
    assert all(c.is_completed for c in today_vm.store.children("P"))
    # the originating view does not re-fetch its own change
    assert repo.ops().count("fetch_children") == 1


@pytest.fixture()
def two_views(clock):
    shared = StubItemRepo([make_item("a", 0), make_item("b", 1), make_item("c", 2)])
    shared_bus = CompletionBus()
    views = []
    for name in ("log", "focus"):
        model = ItemListViewModel(shared, shared_bus, view_name=name, clock=clock)
        model.reload()
        views.append(model)
    shared.calls.clear()
    return shared, views[0], views[1]


def active_orders(repo: StubItemRepo):
    return sorted(it.sort_order for it in repo.rows.values() if not it.is_completed)


def test_other_view_reorders_cleanly_after_completion(two_views):
    shared, log_vm, focus_vm = two_views
    log_vm.on_toggle_completion("a")
    assert group(focus_vm) == ["b", "c"]
    assert focus_vm.ordering.validate_group(MED)
    # mirrored locally, nothing written by the receiving view
    assert shared.ops().count("update_sort_orders") == 1

    assert focus_vm.on_drag_commit("c", "b")
    assert group(focus_vm) == ["c", "b"]
    assert persisted(shared, "c", "b") == [0, 1]
    assert active_orders(shared) == [0, 1]


def test_other_view_places_reopened_item_like_the_sender(two_views):
    shared, log_vm, focus_vm = two_views
    log_vm.on_toggle_completion("a")
    log_vm.on_toggle_completion("a")

    assert group(log_vm) == group(focus_vm) == ["b", "c", "a"]
    assert [it.sort_order for it in focus_vm.store.sibling_group(MED)] == [0, 1, 2]
    assert persisted(shared, "b", "c", "a") == [0, 1, 2]


def test_bus_event_for_unknown_item_is_ignored(vm: ItemListViewModel, bus):
    hits = []
    vm.displayChanged.connect(lambda: hits.append(1))
    bus.publish(CompletionEvent("nope", True, FIXED_NOW, "elsewhere"))
    assert hits == []


def test_own_events_are_ignored(vm: ItemListViewModel, bus):
    bus.publish(CompletionEvent("a0", True, FIXED_NOW, "log"))
    assert not vm.get_item("a0").is_completed


# --- create / edit / delete ------------------------------------------------

def test_create_item_goes_to_top_of_tier(vm: ItemListViewModel, repo: StubItemRepo):
    new_id = vm.create_item("Buy milk")
    assert group(vm)[0] == new_id
    assert vm.ordering.validate_group(MED)
    assert repo.rows[new_id].title == "Buy milk"
    assert persisted(repo, new_id, "a0", "a1", "a2") == [0, 1, 2, 3]


def test_create_item_requires_title(vm: ItemListViewModel):
    with pytest.raises(ValueError):
        vm.create_item("   ")


def test_create_item_failure_rolls_back(vm: ItemListViewModel, repo: StubItemRepo, errors):
    repo.fail_on = {"create_item"}
    assert vm.create_item("Lost") is None
    assert errors
    assert group(vm) == ["a0", "a1", "a2"]


def test_create_child_appends(vm: ItemListViewModel, repo: StubItemRepo):
    child_id = vm.create_child("P", "step")
    child = repo.rows[child_id]
    assert (child.parent_id, child.sort_order, child.kind) == ("P", 3, ItemKind.TASK)
    assert vm.create_child("k0", "too deep") is None
    assert vm.create_child("P", "") is None


def test_rename_failure_is_only_logged(vm: ItemListViewModel, repo: StubItemRepo, errors):
    repo.fail_on = {"update_item"}
    assert vm.rename_item("a0", "Renamed")
    assert vm.get_item("a0").title == "Renamed"
    assert errors == []
    assert "fetch_items" not in repo.ops()


def test_set_item_tier_appends_to_new_tier(vm: ItemListViewModel, repo: StubItemRepo):
    assert vm.set_item_tier("a1", LOW)
    assert group(vm, SiblingFilter(None, LOW)) == ["a1"]
    assert group(vm) == ["a0", "a2"]
    assert repo.rows["a1"].priority_tier is LOW
    assert persisted(repo, "a0", "a2") == [0, 1]
    assert not vm.set_item_tier("a1", LOW)
    assert not vm.set_item_tier("k0", HIGH)


def test_delete_item_closes_the_gap(vm: ItemListViewModel, repo: StubItemRepo):
    assert vm.delete_item("a0")
    assert group(vm) == ["a1", "a2"]
    assert "a0" not in repo.rows
    assert persisted(repo, "a1", "a2") == [0, 1]
    assert not vm.delete_item("a0")


def test_delete_parent_drops_children(vm: ItemListViewModel, repo: StubItemRepo):
    vm.delete_item("P")
    assert vm.get_item("k0") is None
    assert "k0" not in repo.rows


def test_clear_completed(vm: ItemListViewModel, repo: StubItemRepo):
    vm.on_toggle_completion("a1")
    assert vm.clear_completed() == 1
    assert "a1" not in repo.rows
    assert group(vm) == ["a0", "a2"]
