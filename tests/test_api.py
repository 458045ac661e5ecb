from fastapi.testclient import TestClient

from pointbank import services
from pointbank.api import app


def _signin(client, username, password):
    resp = client.post("/signin", json={"username": username, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}, resp.json()["user_id"]


def _signup(client, username, password="pw"):
    resp = client.post("/signup", json={"username": username, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}, resp.json()["user_id"]


def test_root(client):
    assert client.get("/").json() == {"status": "ok"}


def test_deposit_and_withdraw_flow(client):
    headers, _ = _signup(client, "kid1")

    resp = client.post(
        "/transactions",
        json={"kind": "deposit", "amount": 50, "description": "allowance"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["dashboard"]["points_balance"] == 50

    resp = client.post(
        "/transactions",
        json={"kind": "withdraw", "amount": "20", "description": "toy"},
        headers=headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["dashboard"]["transactions"][0]["id"] == data["id"]

    dashboard = client.get("/dashboard", headers=headers).json()
    assert dashboard["points_balance"] == 30
    assert dashboard["users"] == []
    assert [(t["description"], t["amount"]) for t in dashboard["transactions"]] == [
        ("toy", -20),
        ("allowance", 50),
    ]


def test_invalid_amount_is_rejected(client):
    headers, _ = _signup(client, "kid1")
    for amount in (0, -3, "abc", ""):
        resp = client.post(
            "/transactions",
            json={"kind": "deposit", "amount": amount, "description": "x"},
            headers=headers,
        )
        assert resp.status_code == 422

    resp = client.post(
        "/transactions",
        json={"kind": "deposit", "amount": 5, "description": ""},
        headers=headers,
    )
    assert resp.status_code == 422
    assert client.get("/dashboard", headers=headers).json()["transactions"] == []


def test_unknown_kind_is_rejected(client):
    headers, _ = _signup(client, "kid1")
    resp = client.post(
        "/transactions",
        json={"kind": "transfer", "amount": 5, "description": "x"},
        headers=headers,
    )
    assert resp.status_code == 422


def test_admin_adjusts_other_user(client):
    kid_headers, kid_id = _signup(client, "kid1")
    admin_headers, _ = _signin(client, "admin", "admin")

    dashboard = client.get("/dashboard", headers=admin_headers).json()
    assert dashboard["is_admin"] is True
    assert [u["id"] for u in dashboard["users"]] == [kid_id]

    resp = client.post(
        "/transactions",
        json={
            "kind": "deposit",
            "amount": 15,
            "description": "good grades",
            "target_user_id": kid_id,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["dashboard"]["users"][0]["points_balance"] == 15
    assert client.get("/dashboard", headers=kid_headers).json()["points_balance"] == 15


def test_non_admin_cannot_target_other_user(client):
    headers, _ = _signup(client, "kid1")
    _, other_id = _signup(client, "kid2")

    resp = client.post(
        "/transactions",
        json={
            "kind": "withdraw",
            "amount": 5,
            "description": "sneaky",
            "target_user_id": other_id,
        },
        headers=headers,
    )
    assert resp.status_code == 403
    assert services.load_dashboard(other_id)["transactions"] == []


def test_dashboard_for_deleted_token_subject(client):
    from pointbank.auth import create_access_token

    headers = {"Authorization": f"Bearer {create_access_token('missing')}"}
    resp = client.get("/dashboard", headers=headers)
    assert resp.status_code == 404


def test_store_failure_is_opaque(client, monkeypatch):
    headers, _ = _signup(client, "kid1")

    def broken(session, user_id, amount):
        raise RuntimeError("disk full at /var/lib/secret")

    monkeypatch.setattr(services, "_increment_balance", broken)
    resp = client.post(
        "/transactions",
        json={"kind": "deposit", "amount": 5, "description": "x"},
        headers=headers,
    )
    assert resp.status_code == 500
    assert "secret" not in resp.text


def test_metrics_endpoint(session_local):
    client = TestClient(app)
    client.get("/")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "api_requests_total" in resp.text


def test_non_integer_json_amounts_are_rejected(client):
    headers, _ = _signup(client, "kid1")
    for amount in (True, 2.5, str(2**64)):
        resp = client.post(
            "/transactions",
            json={"kind": "deposit", "amount": amount, "description": "x"},
            headers=headers,
        )
        assert resp.status_code == 422
    dashboard = client.get("/dashboard", headers=headers).json()
    assert dashboard["points_balance"] == 0
    assert dashboard["transactions"] == []
