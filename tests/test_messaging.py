import pytest
import requests

from afc_service.services import messaging
from afc_service.services.messaging import WhatsAppGateway, mask_phone, normalize_phone, work_report_message


@pytest.mark.parametrize("raw, expected", [
    ("081234567890", "6281234567890"),
    ("+62 812-3456-7890", "6281234567890"),
    ("6281234567890", "6281234567890"),
    ("81234567890", "6281234567890"),
    ("", ""),
    (None, ""),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_mask_phone_keeps_prefix_and_suffix():
    assert mask_phone("081234567890") == "0812******90"
    assert mask_phone("12345") == "*****"


class _Response:
    def __init__(self, ok, status_code=200, text=""):
        self.ok = ok
        self.status_code = status_code
        self.text = text


def test_gateway_posts_normalized_number(monkeypatch):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return _Response(True)

    monkeypatch.setattr(messaging.requests, "post", fake_post)
    gw = WhatsAppGateway("https://wa.test/send", "secret", session_id="s1")
    assert gw.send("0812 3456 7890", "halo") is True
    url, headers, body = calls[0]
    assert url == "https://wa.test/send"
    assert headers["x-api-key"] == "secret"
    assert body == {"sessionId": "s1", "number": "6281234567890", "message": "halo"}


def test_gateway_failures_return_false(monkeypatch):
    monkeypatch.setattr(messaging.requests, "post", lambda *a, **kw: _Response(False, 500, "down"))
    assert WhatsAppGateway("https://wa.test/send", "k").send("0812", "x") is False

    def boom(*a, **kw):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr(messaging.requests, "post", boom)
    assert WhatsAppGateway("https://wa.test/send", "k").send("0812", "x") is False


def test_gateway_without_url_or_number_does_not_post(monkeypatch):
    def never(*a, **kw):
        raise AssertionError("tidak boleh dipanggil")

    monkeypatch.setattr(messaging.requests, "post", never)
    assert WhatsAppGateway(None, "k").send("0812", "x") is False
    assert WhatsAppGateway("https://wa.test/send", "k").send("", "x") is False


def test_work_report_message_lists_every_unit():
    reports = [
        {"booking_id": "AFC-9", "nama_pelanggan": "Pak Joko", "teknisi": "A1", "no_unit": "1",
         "merk": "Daikin", "jenis_pekerjaan": "Cuci AC", "keterangan": "bersih"},
        {"booking_id": "AFC-9", "nama_pelanggan": "Pak Joko", "teknisi": "A1", "no_unit": "2",
         "merk": "LG", "jenis_pekerjaan": "Isi Freon", "keterangan": ""},
    ]
    text = work_report_message(reports, "AFC Service")
    assert "Kode Booking : *AFC-9*" in text
    assert "Total Unit : *2* unit" in text
    assert "*UNIT 1:*" in text and "*UNIT 2:*" in text
    assert "• Merk: *LG*" in text
    assert "📝 Catatan: *bersih*" in text
    assert text.endswith("*AFC Service*")


def test_single_unit_message_uses_detail_block():
    text = work_report_message([{"booking_id": None, "jenis_pekerjaan": "Cuci AC", "merk": "Sharp"}], "AFC")
    assert "Kode Booking : *Manual*" in text
    assert "📋 DETAIL LAYANAN : *Cuci AC*" in text
    assert "UNIT 1" not in text
