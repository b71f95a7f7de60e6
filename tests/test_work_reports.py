import io
import json

from afc_service.errors import StoreError
from afc_service.services import booking_service, work_report_service
from afc_service.services.work_report_service import detect_device
from afc_service.store.base import Query
from tests.conftest import report_form


def test_submit_creates_one_row_per_unit(client, store, as_teknisi):
    res = client.post("/api/work-reports/", headers=as_teknisi, json=report_form())
    body = res.get_json()
    assert res.status_code == 201
    assert body["mode"] == "insert"
    assert body["warnings"] == []

    rows = store.select(Query("work_reports").eq("booking_id", "AFC-001").order("no_unit"))
    assert len(rows) == 2
    assert {r["status"] for r in rows} == {"pending_approval"}
    assert [r["merk"] for r in rows] == ["Merk1", "Merk2"]
    assert [r["keterangan"] for r in rows] == ["unit 1 ok", "unit 2 ok"]
    assert all(r["jenis_pekerjaan"] == "Cuci AC" for r in rows)

    booking = store.first(Query("bookings").eq("booking_id", "AFC-001"))
    assert booking["status"] == "completed"


def test_submit_requires_customer_and_units(client, store, as_teknisi):
    for form in (report_form(nama_pelanggan=""), report_form(no_wa_pelanggan=" "), report_form(units=0)):
        res = client.post("/api/work-reports/", headers=as_teknisi, json=form)
        assert res.status_code == 400
    assert store.count(Query("work_reports")) == 0


def test_unit_count_mismatch_is_only_a_warning(client, store, as_teknisi):
    res = client.post("/api/work-reports/", headers=as_teknisi, json=report_form(units=3))
    body = res.get_json()
    assert res.status_code == 201
    assert "berbeda" in body["warnings"][0]
    assert store.count(Query("work_reports").eq("booking_id", "AFC-001")) == 3


def test_multipart_photos_are_uploaded_per_unit(client, store, photos, as_teknisi):
    data = {
        "payload": json.dumps(report_form(units=2)),
        "foto_unit_0": (io.BytesIO(b"img-a"), "unit1.jpg"),
        "foto": (io.BytesIO(b"img-b"), "umum.png"),
    }
    res = client.post("/api/work-reports/", headers=as_teknisi, data=data, content_type="multipart/form-data")
    assert res.status_code == 201
    rows = store.select(Query("work_reports").eq("booking_id", "AFC-001").order("no_unit"))
    first = json.loads(rows[0]["foto_url"])
    second = json.loads(rows[1]["foto_url"])
    assert first == ["https://storage.test/work-reports/unit1.jpg", "https://storage.test/work-reports/umum.png"]
    assert second == ["https://storage.test/work-reports/umum.png"]


def test_upload_failure_continues_without_photos(client, store, photos, as_teknisi):
    photos.fail = True
    data = {
        "payload": json.dumps(report_form(units=1)),
        "foto_unit_0": (io.BytesIO(b"img-a"), "unit1.jpg"),
    }
    res = client.post("/api/work-reports/", headers=as_teknisi, data=data, content_type="multipart/form-data")
    assert res.status_code == 201
    row = store.first(Query("work_reports").eq("booking_id", "AFC-001"))
    assert row["foto_url"] is None


def test_store_failure_queues_report_offline(app, client, store, kv, as_teknisi, monkeypatch):
    def broken_insert(table_name, rows):
        raise StoreError("timeout")

    monkeypatch.setattr(store, "insert", broken_insert)
    res = client.post("/api/work-reports/", headers=as_teknisi, json=report_form())
    body = res.get_json()
    assert res.status_code == 202
    assert body["offline"] is True

    queued = work_report_service.offline_queue()
    assert len(queued) == 2
    assert {q["status"] for q in queued} == {"offline_pending"}
    assert client.get("/api/work-reports/offline-queue", headers=as_teknisi).get_json()["total"] == 2
    assert store.first(Query("bookings").eq("booking_id", "AFC-001"))["status"] == "confirmed"


def test_complaint_resubmission_updates_prior_report(store, seed):
    prior = store.insert("work_reports", {
        "booking_id": "AFC-003", "nama_pelanggan": "Pak Dodi", "no_wa_pelanggan": "081377772222",
        "jenis_pekerjaan": "Cuci AC", "teknisi": "A1", "status": "approved", "referral_counted": True,
    })[0]
    booking_service.open_complaint(prior["id"], "2030-02-01", "A1", "masih bocor")

    form = report_form(booking_id="AFC-003", units=1, nama_pelanggan="Pak Dodi", no_wa_pelanggan="081377772222")
    form["units"][0]["keterangan"] = "sudah diperbaiki"
    result = work_report_service.submit(form, {}, [], seed["accounts"]["andi"] | {"technician_code": "A1"})

    assert result["mode"] == "complaint_update"
    rows = store.select(Query("work_reports").eq("booking_id", "AFC-003"))
    assert len(rows) == 1
    assert rows[0]["id"] == prior["id"]
    assert rows[0]["status"] == "pending_approval"
    assert rows[0]["keterangan_komplain"] is None
    assert rows[0]["keterangan"] == "sudah diperbaiki"
    assert store.first(Query("bookings").eq("booking_id", "AFC-003"))["status"] == "completed"


def test_listing_groups_by_booking_with_referral(client, as_admin, as_teknisi):
    client.post("/api/work-reports/", headers=as_teknisi, json=report_form())
    groups = client.get("/api/work-reports/?status=pending_approval", headers=as_admin).get_json()["items"]
    assert len(groups) == 1
    assert groups[0]["booking_id"] == "AFC-001"
    assert groups[0]["kode_referral"] == "REF7"
    assert groups[0]["total_unit"] == 2


def test_customer_history_matches_phone_variants(client, store, as_admin):
    store.insert("work_reports", [
        {"booking_id": "X1", "nama_pelanggan": "Pak Joko", "no_wa_pelanggan": "6281234567890",
         "merk": "daikin", "jenis_pekerjaan": "Cuci AC", "teknisi": "A1"},
        {"booking_id": "X2", "nama_pelanggan": "Pak Joko", "no_wa_pelanggan": "081234567890",
         "merk": "Sharp", "jenis_pekerjaan": "Isi Freon", "teknisi": "A1", "internal_notes": "pipa tipis"},
    ])
    brands = client.get("/api/work-reports/history/081234567890", headers=as_admin).get_json()["brands"]
    assert sorted(brands) == ["DAIKIN", "SHARP"]
    items = client.get("/api/work-reports/history/6281234567890/daikin", headers=as_admin).get_json()["items"]
    assert [i["booking_id"] for i in items] == ["X1"]
    notes = client.get("/api/work-reports/internal-notes", headers=as_admin).get_json()["items"]
    assert [n["internal_notes"] for n in notes] == ["pipa tipis"]


def test_delete_only_approved_reports(client, store, as_admin, as_teknisi):
    pending, approved = store.insert("work_reports", [
        {"booking_id": "X1", "nama_pelanggan": "A", "no_wa_pelanggan": "0811", "jenis_pekerjaan": "Cuci AC",
         "teknisi": "A1", "status": "pending_approval"},
        {"booking_id": "X2", "nama_pelanggan": "B", "no_wa_pelanggan": "0812", "jenis_pekerjaan": "Cuci AC",
         "teknisi": "A1", "status": "approved"},
    ])
    assert client.delete(f"/api/work-reports/{approved['id']}", headers=as_teknisi).status_code == 403
    assert client.delete(f"/api/work-reports/{pending['id']}", headers=as_admin).status_code == 400
    assert client.delete(f"/api/work-reports/{approved['id']}", headers=as_admin).status_code == 200
    assert store.count(Query("work_reports")) == 1


def test_detect_device():
    assert detect_device("Mozilla/5.0 (Linux; Android 13; SM-A546E) Mobile Safari") == "mobile"
    assert detect_device("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)") == "mobile"
    assert detect_device("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") == "desktop"
    assert detect_device(None) == "desktop"


def test_missing_job_type_is_rejected_before_any_upload(client, store, photos, as_teknisi):
    data = {
        "payload": json.dumps(report_form(units=1, jenis_pekerjaan=[])),
        "foto_unit_0": (io.BytesIO(b"img-a"), "unit1.jpg"),
        "foto": (io.BytesIO(b"img-b"), "umum.png"),
    }
    res = client.post("/api/work-reports/", headers=as_teknisi, data=data, content_type="multipart/form-data")
    assert res.status_code == 400
    assert "Jenis pekerjaan unit 1" in res.get_json()["message"]
    assert photos.uploaded == []
    assert store.count(Query("work_reports")) == 0
