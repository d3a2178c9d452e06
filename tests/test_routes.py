"""HTTP API tests through FastAPI's TestClient."""

import json

import pytest


@pytest.fixture
def module(client):
    return client.post("/api/modules", json={"name": "Hollow"}).json()


@pytest.fixture
def session(client, module):
    return client.post(f"/api/modules/{module['id']}/sessions/ensure-default").json()[0]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


# ── Modules ──────────────────────────────────────────────


def test_module_crud(client):
    res = client.post("/api/modules", json={"name": "Hollow", "category": "campaign"})
    assert res.status_code == 201
    m = res.json()
    assert m["category"] == "campaign"
    assert m["schema_version"] == 2

    assert client.get(f"/api/modules/{m['id']}").json()["name"] == "Hollow"
    assert client.patch(f"/api/modules/{m['id']}", json={"name": "Glen"}).json()["name"] == "Glen"
    assert [x["id"] for x in client.get("/api/modules").json()] == [m["id"]]

    assert client.delete(f"/api/modules/{m['id']}").status_code == 200
    assert client.get(f"/api/modules/{m['id']}").status_code == 404


def test_create_module_validation(client):
    assert client.post("/api/modules", json={"name": "  "}).status_code == 400
    assert client.post("/api/modules", json={"name": "X", "category": "saga"}).status_code == 422


def test_missing_module_404(client):
    assert client.get("/api/modules/nope").status_code == 404
    assert client.patch("/api/modules/nope", json={"name": "X"}).status_code == 404
    assert client.delete("/api/modules/nope").status_code == 404
    assert client.get("/api/modules/nope/sections").status_code == 404
    assert client.post("/api/modules/nope/sessions/ensure-default").status_code == 404


def test_replace_module_data(client, module):
    data = {
        "introduction": {"text": "Welcome."},
        "episodes": [{"id": "e1", "title": "Arrival"}],
    }
    res = client.put(f"/api/modules/{module['id']}/data", json=data)
    assert res.status_code == 200
    assert res.json()["data"]["introduction"]["text"] == "Welcome."

    sections = client.get(f"/api/modules/{module['id']}/sections").json()
    assert {"type": "episode", "section_id": "e1", "label": "Arrival"} in sections


def test_replace_module_data_duplicate_ids(client, module):
    data = {"episodes": [{"id": "e1", "title": "A"}, {"id": "e1", "title": "B"}]}
    assert client.put(f"/api/modules/{module['id']}/data", json=data).status_code == 400


def test_delete_module_cascades_sessions(client, module, session):
    client.delete(f"/api/modules/{module['id']}")
    assert client.get(f"/api/sessions/{session['id']}").status_code == 404


# ── Sessions ─────────────────────────────────────────────


def test_ensure_default_idempotent(client, module, session):
    again = client.post(f"/api/modules/{module['id']}/sessions/ensure-default").json()
    assert again == [session]
    assert session["name"] == "Session 1"


def test_session_crud(client, module, session):
    res = client.post("/api/sessions", json={"module_id": module["id"], "name": "Night 2"})
    assert res.status_code == 201
    second = res.json()

    listed = client.get("/api/sessions", params={"module_id": module["id"]}).json()
    assert [s["id"] for s in listed] == [session["id"], second["id"]]

    patched = client.patch(f"/api/sessions/{second['id']}", json={"name": "Finale", "locked": True}).json()
    assert patched["name"] == "Finale"
    assert patched["locked"] is True

    dup = client.post(f"/api/sessions/{second['id']}/duplicate")
    assert dup.status_code == 201
    assert dup.json()["name"] == "Finale (copy)"


def test_create_session_for_missing_module(client):
    assert client.post("/api/sessions", json={"module_id": "nope"}).status_code == 404


def test_patch_items_rejects_duplicate_ids(client, module, session):
    card = {"id": "c1", "module_id": module["id"], "type": "intro"}
    res = client.patch(f"/api/sessions/{session['id']}", json={"items": [card, card]})
    assert res.status_code == 400


def test_rejected_patch_applies_no_field(client, module, session):
    card = {"id": "c1", "module_id": module["id"], "type": "intro"}
    res = client.patch(
        f"/api/sessions/{session['id']}",
        json={"name": "Renamed", "locked": True, "items": [card, card]},
    )
    assert res.status_code == 400
    stored = client.get(f"/api/sessions/{session['id']}").json()
    assert stored["name"] == session["name"]
    assert stored["locked"] is False
    assert stored["items"] == []


def test_guarded_delete_keeps_last_session(client, module, session):
    res = client.delete(f"/api/sessions/{session['id']}", params={"guarded": True})
    assert res.status_code == 409
    assert "at least one session" in res.json()["detail"]

    client.post("/api/sessions", json={"module_id": module["id"], "name": "Two"})
    assert client.delete(f"/api/sessions/{session['id']}", params={"guarded": True}).status_code == 200


def test_unguarded_delete(client, session):
    assert client.delete(f"/api/sessions/{session['id']}").status_code == 200
    assert client.delete(f"/api/sessions/{session['id']}").status_code == 404


def test_revision_bumps_on_mutation(client, session):
    before = client.get("/api/sessions/revision").json()["revision"]
    client.patch(f"/api/sessions/{session['id']}", json={"name": "Renamed"})
    assert client.get("/api/sessions/revision").json()["revision"] == before + 1


def test_delete_module_sessions(client, module, session):
    res = client.delete(f"/api/modules/{module['id']}/sessions")
    assert res.json() == {"removed": 1}


# ── Cards ────────────────────────────────────────────────


def test_card_flow(client, session):
    sid = session["id"]
    res = client.post(f"/api/sessions/{sid}/cards", json={"type": "intro"})
    assert res.status_code == 201
    client.post(f"/api/sessions/{sid}/cards", json={"type": "overview"})
    items = client.get(f"/api/sessions/{sid}").json()["items"]
    assert [c["position"] for c in items] == [{"x": 0, "y": 0}, {"x": 340, "y": 0}]

    first, second = items
    moved = client.post(f"/api/sessions/{sid}/cards/{first['id']}/move", json={"dx": 29, "dy": 11}).json()
    assert moved["items"][0]["position"] == {"x": 20, "y": 20}

    shifted = client.post(f"/api/sessions/{sid}/cards/{first['id']}/shift", json={"direction": "right"}).json()
    assert [c["id"] for c in shifted["items"]] == [second["id"], first["id"]]

    removed = client.delete(f"/api/sessions/{sid}/cards/{second['id']}").json()
    assert [c["id"] for c in removed["items"]] == [first["id"]]

    assert client.delete(f"/api/sessions/{sid}/cards").json()["items"] == []


def test_card_errors(client, session):
    sid = session["id"]
    assert client.post(f"/api/sessions/{sid}/cards", json={"type": "episode"}).status_code == 400
    assert client.post(f"/api/sessions/{sid}/cards", json={"type": "bogus"}).status_code == 422
    assert client.delete(f"/api/sessions/{sid}/cards/nope").status_code == 404
    assert client.post("/api/sessions/nope/cards", json={"type": "intro"}).status_code == 404


def test_locked_session_rejects_card_edits(client, session):
    sid = session["id"]
    card = client.post(f"/api/sessions/{sid}/cards", json={"type": "intro"}).json()["items"][0]
    client.patch(f"/api/sessions/{sid}", json={"locked": True})

    assert client.post(f"/api/sessions/{sid}/cards", json={"type": "map"}).status_code == 409
    assert client.post(f"/api/sessions/{sid}/cards/{card['id']}/move", json={"dx": 40, "dy": 0}).status_code == 409
    assert client.delete(f"/api/sessions/{sid}/cards/{card['id']}").status_code == 409
    assert client.delete(f"/api/sessions/{sid}/cards").status_code == 409
    assert client.get(f"/api/sessions/{sid}").json()["items"] == [card]


def test_dashboard(client, module, session):
    client.put(f"/api/modules/{module['id']}/data", json={
        "introduction": {
            "text": "Welcome.",
            "image": {"data_url": "data:x", "alt": "cave", "show_on_dashboard": True},
        },
    })
    sid = session["id"]
    client.patch(f"/api/sessions/{sid}", json={"items": [
        {"id": "a", "module_id": module["id"], "type": "intro"},
        {"id": "b", "module_id": "deleted-module", "type": "map"},
    ]})

    dash = client.get(f"/api/sessions/{sid}/dashboard").json()
    assert [c["card"]["id"] for c in dash["cards"]] == ["a"]
    assert dash["cards"][0]["text"] == "Welcome."
    assert dash["cards"][0]["image"]["alt"] == "cave"
    assert (dash["width"], dash["height"]) == (800, 600)
    # Positions assigned for rendering are persisted
    stored = client.get(f"/api/sessions/{sid}").json()["items"]
    assert all(c["position"] is not None for c in stored)


def test_layout(client, module, session):
    sid = session["id"]
    client.patch(f"/api/sessions/{sid}", json={"items": [
        {"id": "a", "module_id": module["id"], "type": "intro"},
    ]})
    res = client.post(f"/api/sessions/{sid}/layout")
    assert res.json()["items"][0]["position"] == {"x": 0, "y": 0}
    assert client.post("/api/sessions/nope/layout").status_code == 404


# ── Settings and backup ──────────────────────────────────


def test_settings_endpoints(client):
    assert client.get("/api/settings").json()["theme"] == "system"
    assert client.patch("/api/settings", json={"theme": "dark"}).json()["theme"] == "dark"
    assert client.patch("/api/settings", json={"theme": "neon"}).status_code == 400
    replaced = client.put("/api/settings", json={"compact_mode": True}).json()
    assert replaced["theme"] == "system"
    assert replaced["compact_mode"] is True
    assert client.post("/api/settings/reset").json()["compact_mode"] is False


def test_backup_download_and_restore(client, module, session):
    res = client.get("/api/backup")
    assert res.status_code == 200
    assert "attachment" in res.headers["content-disposition"]
    backup = res.json()

    client.delete(f"/api/modules/{module['id']}")
    res = client.post("/api/backup/import", params={"mode": "replace"}, content=json.dumps(backup))
    assert res.json() == {"mode": "replace", "modules": 1, "sessions": 1}
    assert client.get(f"/api/modules/{module['id']}").status_code == 200
    assert client.get(f"/api/sessions/{session['id']}").status_code == 200


def test_backup_import_merge(client, module):
    backup = client.get("/api/backup").json()
    res = client.post("/api/backup/import", params={"mode": "merge"}, content=json.dumps(backup))
    assert res.json()["modules"] == 1
    assert len(client.get("/api/modules").json()) == 1


@pytest.mark.parametrize("body", ["{not json", "[]", '{"version": 9, "settings": {}, "modules": []}'])
def test_backup_import_invalid(client, module, body):
    res = client.post("/api/backup/import", content=body)
    assert res.status_code == 400
    assert [m["id"] for m in client.get("/api/modules").json()] == [module["id"]]
