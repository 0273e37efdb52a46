import asyncio

import pytest
from fastapi.testclient import TestClient

from colorclash import main
from colorclash.main import app, get_game


@pytest.fixture
def client(funded):
    app.dependency_overrides[get_game] = lambda: funded
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_state_and_bet_flow(client, funded, clock):
    state = client.get("/state.json").json()
    assert state["phase"] == "Open"
    assert state["secondsLeft"] == 30

    r = client.post("/bets", json={"userId": "alice", "type": "Number", "value": 7, "amount": 100})
    assert r.status_code == 200
    assert r.json()["value"] == 7
    assert client.get("/users/alice").json()["balance"] == 900
    assert client.get("/state.json").json()["betCount"] == 1


@pytest.mark.parametrize("payload,status", [
    ({"userId": "alice", "type": "Color", "value": "Red", "amount": 0}, 400),
    ({"userId": "alice", "type": "Color", "value": "Blue", "amount": 5}, 400),
    ({"userId": "alice", "type": "Color", "value": "Red", "amount": 5000}, 400),
    ({"userId": "nobody", "type": "Color", "value": "Red", "amount": 5}, 404),
    ({"userId": "alice", "type": "Parlay", "value": "Red", "amount": 5}, 422),
])
def test_rejected_bets(client, payload, status):
    r = client.post("/bets", json=payload)
    assert r.status_code == status
    assert client.get("/users/alice").json()["balance"] == 1000


def test_bet_after_deadline(client, clock):
    client.get("/state.json")
    clock.advance(31)
    r = client.post("/bets", json={"userId": "bob", "type": "BigSmall", "value": "Big", "amount": 5})
    assert r.status_code == 400
    assert "closed" in r.json()["detail"]


def test_users(client):
    assert client.post("/users", json={"id": "carol", "balance": 20}).json()["balance"] == 20
    assert client.post("/users", json={"id": "carol"}).status_code == 409
    assert client.get("/users/dave").status_code == 404
    assert client.post("/users/carol/funds", json={"amount": 5}).json()["balance"] == 25
    assert client.post("/users/carol/withdraw", json={"amount": 30}).status_code == 400
    assert client.post("/users/carol/withdraw", json={"amount": 25}).json()["balance"] == 0
    assert client.post("/users/carol/withdraw", json={"amount": -1}).status_code == 422


def test_admin_settings_and_override(client):
    assert client.get("/admin/settings").json()["difficulty"] == "easy"
    assert client.post("/admin/settings", json={"difficulty": "moderate"}).json()["difficulty"] == "moderate"
    assert client.post("/admin/settings", json={"difficulty": "brutal"}).status_code == 422

    assert client.post("/admin/override", json={"number": 3, "color": "Red"}).status_code == 422
    assert client.post("/admin/override", json={}).status_code == 422
    s = client.post("/admin/override", json={"color": "Violet"}).json()
    assert s["manualWinnerColor"] == "Violet"
    s = client.post("/admin/override", json={"number": 0}).json()
    assert (s["manualWinner"], s["manualWinnerColor"]) == (0, None)
    assert client.delete("/admin/override").json()["manualWinner"] is None


def test_history_leaderboard_and_totals(client, funded, clock):
    client.post("/admin/override", json={"number": 7})
    client.post("/bets", json={"userId": "alice", "type": "Number", "value": 7, "amount": 100})
    client.post("/bets", json={"userId": "bob", "type": "Color", "value": "Red", "amount": 50})
    clock.advance(30)
    funded.tick()

    history = client.get("/history").json()
    assert len(history) == 1
    assert history[0]["winningNumber"] == 7
    assert history[0]["totalPayout"] == 900

    board = client.get("/leaderboard").json()
    assert board == [{"userId": "alice", "totalWinnings": 800}, {"userId": "bob", "totalWinnings": -50}]

    totals = client.get(f"/admin/rounds/{history[0]['roundId']}/totals").json()
    assert totals["byCategory"]["Color"]["Red"] == 50
    assert client.get("/admin/rounds/missing/totals").status_code == 404


def test_reconcile_with_nothing_pending(client):
    assert client.post("/admin/reconcile").json() == {"applied": [], "pending": []}


@pytest.mark.parametrize("path,body", [
    ("/users/alice/funds", '{"amount": Infinity}'),
    ("/users/alice/withdraw", '{"amount": Infinity}'),
    ("/bets", '{"userId": "alice", "type": "Color", "value": "Red", "amount": Infinity}'),
    ("/users", '{"id": "carol", "balance": Infinity}'),
])
def test_infinite_amounts_rejected(client, path, body):
    r = client.post(path, content=body, headers={"Content-Type": "application/json"})
    assert r.status_code == 422
    assert client.get("/users/alice").json()["balance"] == 1000


def test_round_loop_task_is_kept_and_cancelled(monkeypatch):
    async def idle_loop():
        await asyncio.Event().wait()

    monkeypatch.setattr(main, "round_loop", idle_loop)
    with TestClient(app):
        task = main._round_task
        assert task is not None and not task.done()
    assert main._round_task is None
