from afc_service.services import approval_service, referral_service
from afc_service.store.base import Query
from tests.conftest import report_form


def _submit(client, headers, **kw):
    res = client.post("/api/work-reports/", headers=headers, json=report_form(**kw))
    assert res.status_code == 201
    return res.get_json()["reports"]


def _points(store):
    return store.first(Query("partners").eq("partner_id", "REF7"))["total_poin"]


def test_afc_001_two_units_one_referral_point(client, store, messenger, as_teknisi, as_manager):
    reports = _submit(client, as_teknisi)
    assert len(reports) == 2
    assert {r["booking_id"] for r in reports} == {"AFC-001"}

    res = client.post(f"/api/approvals/{reports[0]['id']}/approve", headers=as_manager, json={"catatan": "rapi"})
    body = res.get_json()
    assert res.status_code == 200
    assert len(body["approved"]) == 2

    rows = store.select(Query("work_reports").eq("booking_id", "AFC-001"))
    assert {r["status"] for r in rows} == {"approved"}
    assert all(r["referral_counted"] for r in rows)
    assert all(r["approved_by"] == "Manager" for r in rows)
    assert _points(store) == 1
    assert store.first(Query("bookings").eq("booking_id", "AFC-001"))["status"] == "selesai"

    steps = {s["step"]: s["status"] for s in body["steps"]}
    assert steps == {
        "customer": "ok",
        "referral": "ok",
        "notify_customer": "ok",
        "notify_partner": "ok",
        "booking_done": "ok",
    }
    report_msg = messenger.to("081234567890")[0]
    assert "UNIT 2" in report_msg and "Total Unit : *2*" in report_msg
    assert messenger.to("6281200000001") == [report_msg]
    assert "+1 POIN" in messenger.to("081299990007")[0]
    assert store.count(Query("customers").eq("phone_number", "6281234567890")) == 1


def test_repeated_approval_does_not_add_points(client, store, messenger, as_teknisi, as_manager):
    reports = _submit(client, as_teknisi)
    client.post(f"/api/approvals/{reports[0]['id']}/approve", headers=as_manager)
    sent_before = len(messenger.sent)

    for rid in (reports[0]["id"], reports[1]["id"]):
        body = client.post(f"/api/approvals/{rid}/approve", headers=as_manager).get_json()
        assert body["already_approved"] is True
    assert _points(store) == 1
    assert len(messenger.sent) == sent_before


def test_claim_and_increment_is_idempotent(store, seed):
    store.insert("work_reports", [
        {"booking_id": "AFC-009", "nama_pelanggan": "X", "no_wa_pelanggan": "0811", "jenis_pekerjaan": "Cuci AC",
         "teknisi": "A1"}
        for _ in range(3)
    ])
    assert referral_service.claim_and_increment("AFC-009", "REF7") is True
    assert referral_service.claim_and_increment("AFC-009", "REF7") is False
    assert _points(store) == 1
    assert store.count(Query("work_reports").eq("booking_id", "AFC-009").eq("referral_counted", False)) == 0


def test_missing_partner_is_skipped(store, seed):
    store.insert("work_reports", {
        "booking_id": "AFC-008", "nama_pelanggan": "X", "no_wa_pelanggan": "0811",
        "jenis_pekerjaan": "Cuci AC", "teknisi": "A1",
    })
    assert referral_service.claim_and_increment("AFC-008", "NOPE") is True
    assert _points(store) == 0


def test_reject_requires_reason_without_touching_store(client, store, as_teknisi, as_manager, monkeypatch):
    reports = _submit(client, as_teknisi)
    calls = []
    monkeypatch.setattr(store, "update", lambda *a, **k: calls.append(a))

    for reason in ("", "   ", None):
        res = client.post(f"/api/approvals/{reports[0]['id']}/reject", headers=as_manager, json={"alasan": reason})
        assert res.status_code == 400
    assert calls == []


def test_reject_marks_siblings_and_booking(client, store, as_teknisi, as_manager):
    reports = _submit(client, as_teknisi)
    res = client.post(f"/api/approvals/{reports[1]['id']}/reject", headers=as_manager,
                      json={"alasan": "Foto unit kurang jelas"})
    body = res.get_json()
    assert len(body["rejected"]) == 2
    assert body["booking"]["status"] == "ditolak"
    assert body["booking"]["catatan"] == "Foto unit kurang jelas"
    rows = store.select(Query("work_reports").eq("booking_id", "AFC-001"))
    assert {r["rejection_reason"] for r in rows} == {"Foto unit kurang jelas"}


def test_reject_on_deleted_booking_changes_nothing(client, store, as_teknisi, as_manager):
    reports = _submit(client, as_teknisi)
    assert client.delete("/api/bookings/AFC-001", headers=as_manager).status_code == 200

    res = client.post(f"/api/approvals/{reports[0]['id']}/reject", headers=as_manager, json={"alasan": "x"})
    assert res.status_code == 409
    rows = store.select(Query("work_reports").eq("booking_id", "AFC-001"))
    assert {r["status"] for r in rows} == {"pending_approval"}
    assert {r["rejection_reason"] for r in rows} == {None}


def test_failed_notification_is_recorded_and_retried(app, client, store, messenger, as_teknisi, as_manager):
    messenger.failing.add("6281234567890")
    reports = _submit(client, as_teknisi)
    client.post(f"/api/approvals/{reports[0]['id']}/approve", headers=as_manager)

    steps = {s["step"]: s for s in approval_service.step_log("AFC-001")}
    assert steps["notify_customer"]["status"] == "failed"
    assert steps["notify_customer"]["attempts"] == app.config["SAGA_MAX_RETRIES"]
    # Langkah lain tetap berjalan walaupun notifikasi gagal
    assert steps["booking_done"]["status"] == "ok"
    assert steps["referral"]["attempts"] == 1
    assert _points(store) == 1

    messenger.failing.clear()
    app.config["SAGA_MAX_RETRIES"] = 5
    outcomes = approval_service.retry_failed("AFC-001")
    assert [o["status"] for o in outcomes] == ["ok"]
    res = client.get("/api/approvals/AFC-001/steps", headers=as_manager)
    assert {s["status"] for s in res.get_json()["steps"]} == {"ok"}


def test_check_unit_job_skips_affiliate_message(client, store, messenger, as_teknisi, as_manager):
    reports = _submit(client, as_teknisi, jenis_pekerjaan=["Cek Unit"])
    body = client.post(f"/api/approvals/{reports[0]['id']}/approve", headers=as_manager).get_json()
    steps = {s["step"]: s["status"] for s in body["steps"]}
    assert steps["notify_partner"] == "skipped"
    assert messenger.to("081299990007") == []


def test_only_managers_can_approve(client, as_teknisi):
    reports = _submit(client, as_teknisi)
    assert client.post(f"/api/approvals/{reports[0]['id']}/approve", headers=as_teknisi).status_code == 403
