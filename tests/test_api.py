"""API route tests."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from api.main import app
from api.models import match_to_public
from conftest import build_state
from gnosia.engine import resolve_night_roles
from gnosia.rules import Role

client = TestClient(app)


def _create(**body) -> str:
    r = client.post("/matches", json={"seed": 7, **body})
    assert r.status_code == 200
    return r.json()["match_id"]


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_list_commands():
    r = client.get("/commands")
    assert r.status_code == 200
    by_id = {c["id"]: c for c in r.json()}
    assert by_id["suspect"]["category"] == "root"
    assert by_id["suspect"]["target"] == "required"
    assert by_id["block_rebuttal"]["requires"] == {"charisma": 40}
    assert by_id["agree_proposal"]["user_selectable"] is False


def test_create_match():
    mid = _create(num_characters=6)
    r = client.get(f"/matches/{mid}")
    assert r.status_code == 200
    state = r.json()
    assert state["match_id"] == mid
    assert len(state["characters"]) == 6
    assert state["phase"] == "day"
    assert state["day"] == 1
    assert all(c["role"] is None for c in state["characters"])
    assert len(state["trust"]) == 6


def test_create_match_spectate_shows_roles():
    mid = _create(num_characters=5, spectate=True)
    state = client.get(f"/matches/{mid}").json()
    roles = [c["role"] for c in state["characters"]]
    assert roles.count("infiltrator") == 1


def test_create_match_with_roster():
    characters = [{"name": n, "stats": {"logic": 20}} for n in ("A", "B", "C", "D", "E")]
    mid = _create(characters=characters, settings={"doctor": True})
    state = client.get(f"/matches/{mid}").json()
    assert [c["name"] for c in state["characters"]] == ["A", "B", "C", "D", "E"]


def test_create_match_validation():
    r = client.post("/matches", json={"num_characters": 4})
    assert r.status_code == 422
    r = client.post("/matches", json={"num_characters": 6, "settings": {"infiltrators": 2}})
    assert r.status_code == 422
    dupes = [{"name": "A"}] * 5
    r = client.post("/matches", json={"characters": dupes})
    assert r.status_code == 422


def test_create_match_engine_rejection_is_400():
    with patch("api.main.start_match", side_effect=ValueError("bad setup")):
        r = client.post("/matches", json={"num_characters": 5})
    assert r.status_code == 400
    assert r.json()["detail"] == "bad setup"


def test_step_returns_new_events():
    mid = _create(num_characters=5)
    r = client.post(f"/matches/{mid}/step")
    assert r.status_code == 200
    data = r.json()
    assert data["turn"] == 1
    assert data["events"][0]["kind"] == "turn_start"


def test_run_to_end_then_step_is_400():
    mid = _create(num_characters=5)
    r = client.post(f"/matches/{mid}/run")
    assert r.status_code == 200
    data = r.json()
    assert data["phase"] == "ended"
    assert data["winner"] in ("crew", "infiltrators", "bug")
    assert all(c["role"] is not None for c in data["characters"])
    r = client.post(f"/matches/{mid}/step")
    assert r.status_code == 400


def test_get_since_filters_events():
    mid = _create(num_characters=5)
    full = client.get(f"/matches/{mid}").json()["events"]
    assert len(full) >= 1
    tail = client.get(f"/matches/{mid}", params={"since": 1}).json()["events"]
    assert tail == full[1:]


def test_match_log():
    mid = _create(num_characters=5)
    client.post(f"/matches/{mid}/step")
    r = client.get(f"/matches/{mid}/log")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "Day 1" in r.text


def test_list_and_delete_match():
    mid = _create(num_characters=5)
    assert mid in client.get("/matches").json()["matches"]
    r = client.delete(f"/matches/{mid}")
    assert r.status_code == 200
    assert client.get(f"/matches/{mid}").status_code == 404
    assert client.delete(f"/matches/{mid}").status_code == 404


def test_unknown_match_404():
    assert client.get("/matches/nonexistent-id").status_code == 404
    assert client.post("/matches/nonexistent-id/step").status_code == 404
    assert client.post("/matches/nonexistent-id/run").status_code == 404
    assert client.get("/matches/nonexistent-id/log").status_code == 404


def test_validate_roster():
    body = {"version": 1, "characters": [{"name": "Setsu", "stats": {"intuition": 45}}]}
    r = client.post("/roster/validate", json=body)
    assert r.status_code == 200
    assert r.json()["characters"][0]["stats"]["intuition"] == 45
    r = client.post("/roster/validate", json={"version": 3, "characters": []})
    assert r.status_code == 422


def test_night_role_events_hide_role_holders():
    state = build_state(roles={0: Role.INFILTRATOR, 2: Role.ENGINEER, 3: Role.GUARDIAN, 4: Role.DOCTOR})
    state.characters[1].alive = False
    state.last_cold_sleep = 1
    with patch("gnosia.ai.pick_engineer_target", return_value=0), \
            patch("gnosia.ai.pick_guardian_target", return_value=5), \
            patch("gnosia.ai.pick_infiltrator_victim", return_value=5):
        resolve_night_roles(state)
    public = match_to_public(state, spectate=False)
    night = [e for e in public.events if e.kind in ("investigation", "protection", "report")]
    assert {e.kind for e in night} == {"investigation", "protection", "report"}
    assert all(e.actor is None for e in night)
    assert all(e.target != 5 for e in night)
    assert all(c.role is None for c in public.characters)
