import pytest

from afc_service.errors import ValidationError
from afc_service.services import account_service
from afc_service.services.account_service import EditSession
from afc_service.store.base import Query


def _snapshot():
    return [
        {"id": "a1", "username": "admin", "password": "x", "name": "Admin", "role": "admin", "active": True,
         "is_default": True},
        {"id": "t1", "username": "andi", "password": "y", "name": "Andi", "role": "teknisi", "active": True,
         "is_default": False},
    ]


def test_edit_session_is_immutable():
    base = EditSession.start(_snapshot())
    changed = base.add_account("sari", "pw", "Sari", "helper")
    assert base.added == ()
    assert not base.has_changes
    assert changed.has_changes
    assert [a["username"] for a in changed.accounts()] == ["admin", "andi", "sari"]


def test_duplicate_username_and_missing_fields():
    session = EditSession.start(_snapshot())
    with pytest.raises(ValidationError):
        session.add_account("andi", "pw", "Andi 2", "teknisi")
    with pytest.raises(ValidationError):
        session.add_account("baru", "", "Baru", "teknisi")
    with pytest.raises(ValidationError):
        session.add_account("baru", "pw", "Baru", "direktur")
    with pytest.raises(ValidationError):
        session.update_account("t1", username="admin")


def test_deleting_unsaved_account_drops_it():
    session = EditSession.start(_snapshot()).add_account("sari", "pw", "Sari", "helper")
    new_id = session.added[0]["id"]
    session = session.delete_account(new_id)
    assert session.added == ()
    assert not session.has_changes


def test_default_account_cannot_be_deleted():
    with pytest.raises(ValidationError):
        EditSession.start(_snapshot()).delete_account("a1")


def test_toggle_and_serialization_round_trip():
    session = EditSession.start(_snapshot()).toggle_active("t1").update_technician_code("c1", name="Andi S")
    restored = EditSession.from_dict(session.to_dict())
    assert restored == session
    assert next(a for a in restored.accounts() if a["id"] == "t1")["active"] is False


def test_apply_persists_all_changes(store, seed):
    andi = seed["accounts"]["andi"]
    lama = seed["accounts"]["lama"]
    code = store.first(Query("technician_codes").eq("code", "A1"))
    session = (
        EditSession.start(account_service.list_accounts())
        .add_account("sari", "pw", "Sari", "helper")
        .update_account(andi["id"], name="Andi Saputra")
        .delete_account(lama["id"])
        .update_technician_code(code["id"], name="Andi Saputra")
    )
    summary = account_service.apply(session)
    assert summary == {"added": 1, "updated": 1, "deleted": 1, "technician_codes": 1}

    usernames = {a["username"] for a in account_service.list_accounts()}
    assert "sari" in usernames and "lama" not in usernames
    assert store.first(Query("system_accounts").eq("id", andi["id"]))["name"] == "Andi Saputra"
    assert store.first(Query("technician_codes").eq("id", code["id"]))["name"] == "Andi Saputra"


def test_accounts_are_listed_by_role_then_name(seed):
    roles = [a["role"] for a in account_service.list_accounts()]
    assert roles == sorted(roles, key=["admin", "manager", "teknisi", "helper"].index)


def test_edit_session_over_api(client, store, as_admin):
    res = client.post("/api/admin/edit/accounts", headers=as_admin,
                      json={"username": "sari", "password": "pw", "name": "Sari", "role": "helper"})
    assert res.status_code == 201
    assert res.get_json()["pending"]["added"] == 1
    assert all("password" not in a for a in res.get_json()["accounts"])

    # Belum tersimpan sampai apply
    assert store.first(Query("system_accounts").eq("username", "sari")) is None
    res = client.post("/api/admin/edit/apply", headers=as_admin)
    assert res.get_json()["summary"]["added"] == 1
    assert store.first(Query("system_accounts").eq("username", "sari")) is not None

    client.post("/api/admin/edit/accounts", headers=as_admin,
                json={"username": "tono", "password": "pw", "name": "Tono", "role": "teknisi"})
    res = client.post("/api/admin/edit/discard", headers=as_admin)
    assert "tono" not in [a["username"] for a in res.get_json()["accounts"]]
    assert client.get("/api/admin/edit", headers=as_admin).get_json()["has_changes"] is False


def test_admin_panel_is_admin_only(client, as_manager):
    assert client.get("/api/admin/accounts", headers=as_manager).status_code == 403
    assert client.get("/api/admin/technician-codes", headers=as_manager).status_code == 200


def test_failed_apply_saves_nothing_and_can_be_retried(client, store, seed, as_admin):
    lama = seed["accounts"]["lama"]
    code = store.first(Query("technician_codes").eq("code", "A1"))
    client.post("/api/admin/edit/accounts", headers=as_admin,
                json={"username": "sari", "password": "pw", "name": "Sari", "role": "helper"})
    client.delete(f"/api/admin/edit/accounts/{lama['id']}", headers=as_admin)
    # Kode B1 sudah dipakai sehingga penyimpanan gagal di tengah jalan
    client.patch(f"/api/admin/edit/technician-codes/{code['id']}", headers=as_admin, json={"code": "B1"})

    res = client.post("/api/admin/edit/apply", headers=as_admin)
    assert res.status_code == 502
    assert store.first(Query("system_accounts").eq("username", "sari")) is None
    assert store.first(Query("system_accounts").eq("id", lama["id"])) is not None
    assert client.get("/api/admin/edit", headers=as_admin).get_json()["has_changes"] is True

    client.patch(f"/api/admin/edit/technician-codes/{code['id']}", headers=as_admin, json={"code": "A2"})
    res = client.post("/api/admin/edit/apply", headers=as_admin)
    assert res.status_code == 200
    assert res.get_json()["summary"] == {"added": 1, "updated": 0, "deleted": 1, "technician_codes": 1}
    assert store.count(Query("system_accounts").eq("username", "sari")) == 1
    assert store.first(Query("system_accounts").eq("id", lama["id"])) is None
    assert store.first(Query("technician_codes").eq("id", code["id"]))["code"] == "A2"
