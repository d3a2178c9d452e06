"""Tests for session CRUD, default creation, notification, and card edits."""

import threading

import pytest

from fizzrix.errors import LastSessionError, SessionLockedError
from fizzrix.models import CardRef, Position


@pytest.fixture
def module(repo):
    return repo.modules.add("Quest")


# ── Default session ──────────────────────────────────────


def test_ensure_default_is_idempotent(repo, module):
    first = repo.sessions.ensure_default_for_module(module.id)
    second = repo.sessions.ensure_default_for_module(module.id)
    assert len(first) == 1
    assert second == first
    assert first[0].name == "Session 1"
    assert first[0].locked is False
    assert len(repo.sessions.list_by_module(module.id)) == 1


def test_ensure_default_returns_existing(repo, module):
    a = repo.sessions.create(module.id, "Prep")
    b = repo.sessions.create(module.id, "Night 2")
    assert repo.sessions.ensure_default_for_module(module.id) == [a, b]


def test_ensure_default_concurrent_calls(repo, module):
    """Racing first reads create exactly one session."""
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        repo.sessions.ensure_default_for_module(module.id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(repo.sessions.list_by_module(module.id)) == 1


# ── CRUD ─────────────────────────────────────────────────


def test_create_and_get(repo, module):
    s = repo.sessions.create(module.id, "Night 1")
    assert repo.sessions.get(s.id) == s
    assert s.items == []


def test_create_blank_name(repo, module):
    with pytest.raises(ValueError):
        repo.sessions.create(module.id, " ")


def test_get_missing(repo):
    assert repo.sessions.get("nope") is None
    assert repo.sessions.list_by_module("nope") == []


def test_rename(repo, module):
    s = repo.sessions.create(module.id)
    assert repo.sessions.rename(s.id, "Finale").name == "Finale"
    assert repo.sessions.get(s.id).name == "Finale"


def test_set_locked(repo, module):
    s = repo.sessions.create(module.id)
    assert repo.sessions.set_locked(s.id, True).locked is True
    assert repo.sessions.get(s.id).locked is True


def test_mutations_on_missing_session(repo):
    assert repo.sessions.rename("nope", "X") is None
    assert repo.sessions.set_locked("nope", True) is None
    assert repo.sessions.set_items("nope", []) is None
    assert repo.sessions.duplicate("nope") is None
    assert repo.sessions.remove("nope") is False


def test_set_items_round_trips_positions(repo, module):
    s = repo.sessions.create(module.id)
    items = [
        CardRef(id="c1", module_id=module.id, type="intro", position=Position(x=0, y=0)),
        {"id": "c2", "module_id": module.id, "type": "map", "position": None},
    ]
    repo.sessions.set_items(s.id, items)
    loaded = repo.sessions.get(s.id).items
    assert [c.id for c in loaded] == ["c1", "c2"]
    assert loaded[0].position == Position(x=0, y=0)
    assert loaded[1].position is None


def test_set_items_duplicate_card_ids(repo, module):
    s = repo.sessions.create(module.id)
    card = CardRef(id="c1", module_id=module.id, type="intro")
    with pytest.raises(ValueError):
        repo.sessions.set_items(s.id, [card, card])


def test_update_is_all_or_nothing(repo, module):
    s = repo.sessions.create(module.id, "Night 1")
    card = CardRef(id="c1", module_id=module.id, type="intro")
    with pytest.raises(ValueError):
        repo.sessions.update(s.id, name="Renamed", locked=True, items=[card, card])
    stored = repo.sessions.get(s.id)
    assert stored.name == "Night 1"
    assert stored.locked is False
    assert stored.items == []


def test_update_several_fields_notifies_once(repo, module):
    s = repo.sessions.create(module.id)
    changes = []
    repo.sessions.subscribe(changes.append)
    updated = repo.sessions.update(s.id, name="Finale", locked=True)
    assert (updated.name, updated.locked) == ("Finale", True)
    assert [c.kind for c in changes] == ["updated"]


def test_duplicate_deep_copies(repo, module):
    s = repo.sessions.create(module.id, "Night 1")
    repo.sessions.add_card(s.id, "intro")
    repo.sessions.set_locked(s.id, True)
    dup = repo.sessions.duplicate(s.id)
    assert dup.id != s.id
    assert dup.name == "Night 1 (copy)"
    assert dup.locked is True
    assert dup.items == repo.sessions.get(s.id).items

    repo.sessions.set_locked(dup.id, False)
    repo.sessions.clear_cards(dup.id)
    assert len(repo.sessions.get(s.id).items) == 1


def test_remove_by_module(repo, module):
    other = repo.modules.add("Other")
    repo.sessions.create(module.id)
    repo.sessions.create(module.id, "Session 2")
    repo.sessions.create(other.id)
    assert repo.sessions.remove_by_module(module.id) == 2
    assert repo.sessions.list_by_module(module.id) == []
    assert len(repo.sessions.list_by_module(other.id)) == 1


# ── At least one session per module ──────────────────────


def test_remove_guarded_rejects_last_session(repo, module):
    (only,) = repo.sessions.ensure_default_for_module(module.id)
    with pytest.raises(LastSessionError):
        repo.sessions.remove_guarded(only.id)
    assert repo.sessions.get(only.id) is not None


def test_remove_guarded_with_two_sessions(repo, module):
    (first,) = repo.sessions.ensure_default_for_module(module.id)
    second = repo.sessions.create(module.id, "Session 2")
    assert repo.sessions.remove_guarded(first.id) is True
    assert repo.sessions.list_by_module(module.id) == [second]


# ── Change notification ──────────────────────────────────


def test_every_mutation_notifies(repo, module):
    changes = []
    unsubscribe = repo.sessions.subscribe(changes.append)

    s = repo.sessions.create(module.id)
    repo.sessions.rename(s.id, "Renamed")
    repo.sessions.set_locked(s.id, True)
    repo.sessions.set_items(s.id, [])
    dup = repo.sessions.duplicate(s.id)
    repo.sessions.remove(dup.id)

    assert [c.kind for c in changes] == [
        "created", "updated", "updated", "updated", "created", "removed",
    ]
    assert all(c.module_id == module.id for c in changes)
    revisions = [c.revision for c in changes]
    assert revisions == sorted(revisions)
    assert repo.sessions.revision() == revisions[-1]

    unsubscribe()
    repo.sessions.create(module.id, "Quiet")
    assert len(changes) == 6


def test_failing_listener_does_not_break_write(repo, module):
    def boom(change):
        raise RuntimeError("listener exploded")

    repo.sessions.subscribe(boom)
    s = repo.sessions.create(module.id)
    assert repo.sessions.get(s.id) is not None


def test_listener_can_write_from_another_thread(repo, module):
    """Listeners run after the store lock is released."""
    workers = []

    def on_change(change):
        if change.kind != "created":
            return
        t = threading.Thread(target=repo.sessions.rename, args=(change.session_id, "Renamed"))
        t.start()
        t.join(timeout=5)
        workers.append(t)

    repo.sessions.subscribe(on_change)
    (session,) = repo.sessions.ensure_default_for_module(module.id)

    assert len(workers) == 1
    assert not workers[0].is_alive()
    assert repo.sessions.get(session.id).name == "Renamed"


# ── Cards ────────────────────────────────────────────────


def test_add_card_gets_packed_position(repo, module):
    s = repo.sessions.create(module.id)
    repo.sessions.add_card(s.id, "intro")
    s = repo.sessions.add_card(s.id, "overview")
    assert [c.position for c in s.items] == [Position(x=0, y=0), Position(x=340, y=0)]
    assert all(c.module_id == module.id for c in s.items)


def test_add_section_card_needs_section_id(repo, module):
    s = repo.sessions.create(module.id)
    with pytest.raises(ValueError):
        repo.sessions.add_card(s.id, "episode")


def test_move_card_persists(repo, module):
    s = repo.sessions.create(module.id)
    card = repo.sessions.add_card(s.id, "intro").items[0]
    s = repo.sessions.move_card(s.id, card.id, 47, -12)
    assert s.items[0].position == Position(x=40, y=0)
    assert repo.sessions.get(s.id).items[0].position == Position(x=40, y=0)


def test_locked_session_rejects_card_edits(repo, module):
    s = repo.sessions.create(module.id)
    card = repo.sessions.add_card(s.id, "intro").items[0]
    repo.sessions.set_locked(s.id, True)
    with pytest.raises(SessionLockedError):
        repo.sessions.add_card(s.id, "map")
    with pytest.raises(SessionLockedError):
        repo.sessions.remove_card(s.id, card.id)
    with pytest.raises(SessionLockedError):
        repo.sessions.move_card(s.id, card.id, 20, 20)
    assert repo.sessions.get(s.id).items == [card]


def test_layout_fills_missing_positions(repo, module):
    s = repo.sessions.create(module.id)
    repo.sessions.set_items(s.id, [
        CardRef(id="a", module_id=module.id, type="intro"),
        CardRef(id="b", module_id=module.id, type="map"),
    ])
    repo.sessions.set_locked(s.id, True)
    laid_out = repo.sessions.layout(s.id)
    assert [c.position for c in laid_out.items] == [Position(x=0, y=0), Position(x=340, y=0)]
