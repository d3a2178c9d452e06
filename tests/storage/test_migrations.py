"""Tests for schema upgrades of legacy module/session records."""

import json

from fizzrix.models import SCHEMA_VERSION, Module
from fizzrix.storage import Repository
from fizzrix.storage.local import LEGACY_DASHBOARD_KEY, LocalStore
from fizzrix.storage.migrations import (
    LEGACY_MONSTER_NAME,
    sessions_from_legacy_dashboard,
    upgrade_module,
    upgrade_session,
)

LEGACY_MODULE = {
    "id": "m1",
    "name": "Hollow",
    "category": "one-shot",
    "createdAt": "2025-01-01T00:00:00Z",
    "updatedAt": "2025-01-02T00:00:00Z",
    "data": {
        "mapUrl": "https://example.com/map.png",
        "mapImage": {"dataUrl": "data:image/png;base64,AAA", "alt": "map", "showOnDashboard": True},
        "introduction": "Welcome.",
        "introImage": {"dataUrl": "", "alt": "", "showOnDashboard": False},
        "overview": "Three acts.",
        "episodes": [{"id": "e1", "title": "Arrival", "content": "Smoke."}],
        "appendices": {
            "monsters": "Goblin: weak",
            "monstersImage": {"dataUrl": "data:x", "alt": "gob", "showOnDashboard": True},
            "magicItems": "",
        },
    },
}


def test_upgrade_module_flat_fields():
    m = Module.model_validate(upgrade_module(LEGACY_MODULE))
    assert m.schema_version == SCHEMA_VERSION
    assert m.created_at == "2025-01-01T00:00:00Z"
    assert m.updated_at == "2025-01-02T00:00:00Z"
    assert m.data.map.url == "https://example.com/map.png"
    assert m.data.map.image.data_url == "data:image/png;base64,AAA"
    assert m.data.map.image.show_on_dashboard is True
    assert m.data.introduction.text == "Welcome."
    assert m.data.overview.text == "Three acts."
    assert m.data.episodes[0].title == "Arrival"


def test_upgrade_module_string_appendix():
    """A string appendix becomes a one-entry list holding the whole text."""
    m = Module.model_validate(upgrade_module(LEGACY_MODULE))
    monsters = m.data.appendices.monsters
    assert len(monsters) == 1
    assert monsters[0].name == LEGACY_MONSTER_NAME == "Legacy Monster Entry"
    assert monsters[0].content == "Goblin: weak"
    assert monsters[0].image.alt == "gob"
    assert m.data.appendices.magic_items == []


def test_upgrade_module_is_idempotent():
    once = upgrade_module(LEGACY_MODULE)
    assert upgrade_module(once) is once
    again = upgrade_module(LEGACY_MODULE)
    assert again == once


def test_upgrade_module_array_appendix_in_legacy_record():
    raw = {**LEGACY_MODULE, "data": {"appendices": {
        "monsters": [{"id": "x", "name": "Orc", "content": "tough"}],
        "magicItems": [{"id": "y", "name": "Ring"}],
    }}}
    m = Module.model_validate(upgrade_module(raw))
    assert [e.name for e in m.data.appendices.monsters] == ["Orc"]
    assert [e.name for e in m.data.appendices.magic_items] == ["Ring"]


def test_upgrade_module_repairs_duplicate_entry_ids():
    raw = {**LEGACY_MODULE, "data": {"episodes": [
        {"id": "e1", "title": "A"}, {"id": "e1", "title": "B"}, {"title": "C"},
    ]}}
    m = Module.model_validate(upgrade_module(raw))
    ids = [e.id for e in m.data.episodes]
    assert ids[0] == "e1"
    assert len(set(ids)) == 3


def test_upgrade_session_legacy_cards():
    raw = {
        "id": "s1",
        "moduleId": "m1",
        "name": "Session 1",
        "items": [
            {"id": "c1", "moduleId": "m1", "type": "intro", "sectionId": None, "size": 2},
            {"id": "c2", "moduleId": "m1", "type": "episode", "sectionId": "e1",
             "position": {"x": 40, "y": 20}},
        ],
    }
    s = upgrade_session(raw)
    assert s["module_id"] == "m1"
    assert s["locked"] is False
    assert s["items"][0] == {
        "id": "c1", "module_id": "m1", "type": "intro", "section_id": None, "position": None,
    }
    assert s["items"][1]["position"] == {"x": 40, "y": 20}


def test_sessions_from_legacy_dashboard_groups_by_module():
    items = [
        {"id": "a", "moduleId": "m1", "type": "intro", "sectionId": None},
        {"id": "b", "moduleId": "m2", "type": "map", "sectionId": None},
        {"id": "c", "moduleId": "m1", "type": "overview", "sectionId": None},
    ]
    sessions = sessions_from_legacy_dashboard(items)
    assert [s["module_id"] for s in sessions] == ["m1", "m2"]
    assert all(s["name"] == "Session 1" and s["locked"] is False for s in sessions)
    assert [c["id"] for c in sessions[0]["items"]] == ["a", "c"]


def test_repository_upgrades_stored_records(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "modules.json").write_text(json.dumps([LEGACY_MODULE]))

    repo = Repository(data_dir)
    stored = json.loads((data_dir / "modules.json").read_text())
    assert stored[0]["schema_version"] == SCHEMA_VERSION
    assert stored[0]["data"]["appendices"]["monsters"][0]["content"] == "Goblin: weak"
    assert repo.modules.get("m1").data.appendices.monsters[0].name == "Legacy Monster Entry"


def test_repository_migrates_legacy_dashboard(data_dir):
    data_dir.mkdir(parents=True)
    LocalStore(data_dir).set(LEGACY_DASHBOARD_KEY, json.dumps([
        {"id": "a", "moduleId": "m1", "type": "intro", "sectionId": None, "size": 1},
    ]))

    repo = Repository(data_dir)
    sessions = repo.sessions.list()
    assert len(sessions) == 1
    assert sessions[0].name == "Session 1"
    assert sessions[0].items[0].id == "a"
    assert repo.local.get(LEGACY_DASHBOARD_KEY) is None

    # A second startup sees the migrated data and does not convert again
    assert len(Repository(data_dir).sessions.list()) == 1
