from datetime import timedelta

import pytest

from afc_service.errors import AuthError, StoreError
from afc_service.services import auth_service
from afc_service.utils.timez import now_utc
from tests.conftest import login


def test_login_returns_identity_and_routes(client, seed):
    res = client.post("/api/auth/login", json={"username": "andi", "password": "andi123"})
    body = res.get_json()
    assert res.status_code == 200
    assert body["user"] == {"username": "andi", "name": "Andi", "role": "teknisi", "technician_code": "A1"}
    assert "approval" not in body["routes"]
    assert "schedule" in body["routes"]


@pytest.mark.parametrize("username,password", [
    ("admin", "salah"),
    ("tidakada", "admin123"),
    ("lama", "lama123"),
])
def test_login_failures_share_one_message(client, seed, username, password):
    res = client.post("/api/auth/login", json={"username": username, "password": password})
    assert res.status_code == 401
    assert res.get_json()["message"] == "Username atau password salah"


def test_login_uses_fallback_accounts_when_store_unreachable(app, monkeypatch):
    app.config["FALLBACK_ACCOUNTS"] = [
        {"username": "darurat", "password": "rahasia", "name": "Darurat", "role": "admin"},
    ]

    def broken():
        raise StoreError("offline")

    monkeypatch.setattr(auth_service, "get_store", broken)
    result = auth_service.login("darurat", "rahasia")
    assert result["user"]["role"] == "admin"
    with pytest.raises(AuthError):
        auth_service.login("darurat", "keliru")


def test_session_expires_after_six_hours_of_inactivity(client, kv, seed):
    headers = login(client, "admin", "admin123")
    token = headers["Authorization"].split()[1]
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    kv.set(f"last_activity:{token}", (now_utc() - timedelta(hours=6, minutes=1)).isoformat())
    res = client.get("/api/auth/me", headers=headers)
    assert res.status_code == 401
    assert kv.get(f"session:{token}") is None
    assert kv.get(f"last_activity:{token}") is None


def test_activity_refreshes_last_activity(client, kv, seed):
    headers = login(client, "admin", "admin123")
    token = headers["Authorization"].split()[1]
    old = (now_utc() - timedelta(hours=5)).isoformat()
    kv.set(f"last_activity:{token}", old)
    assert client.get("/api/auth/routes", headers=headers).status_code == 200
    assert kv.get(f"last_activity:{token}") != old


def test_logout_and_sweep(client, kv, seed):
    headers = login(client, "admin", "admin123")
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401

    stale = login(client, "manager", "manager123")["Authorization"].split()[1]
    kv.set(f"last_activity:{stale}", (now_utc() - timedelta(hours=7)).isoformat())
    assert auth_service.sweep_expired() == 1
    assert kv.get(f"session:{stale}") is None


def test_missing_token_is_rejected(client, seed):
    assert client.get("/api/bookings/").status_code == 401


def test_role_guard(client, as_teknisi):
    assert client.get("/api/affiliates/", headers=as_teknisi).status_code == 403
