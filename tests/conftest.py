from __future__ import annotations

from datetime import timedelta

import pytest

from afc_service import create_app
from afc_service.extensions import get_kv, get_store, set_collaborators
from afc_service.services.messaging import normalize_phone
from afc_service.utils.timez import now_utc, today_local_date


class FakeMessenger:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.failing: set[str] = set()

    def send(self, number, message):
        target = normalize_phone(number)
        self.sent.append((target, message))
        return target not in self.failing

    def to(self, number):
        target = normalize_phone(number)
        return [m for n, m in self.sent if n == target]


class FakePhotoStorage:
    def __init__(self):
        self.uploaded: list[str] = []
        self.fail = False

    def upload(self, data, filename, content_type=None):
        if self.fail:
            raise IOError("bucket tidak bisa dihubungi")
        url = f"https://storage.test/work-reports/{filename}"
        self.uploaded.append(url)
        return url


class FakePush:
    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []

    def send(self, title, body, data=None):
        self.sent.append((title, body, data or {}))
        return True

    def subscribe(self, token):
        return True


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def photos():
    return FakePhotoStorage()


@pytest.fixture
def push():
    return FakePush()


@pytest.fixture
def app(messenger, photos, push):
    app = create_app({"TESTING": True, "SAGA_RETRY_DELAY": 0})
    set_collaborators(photo_storage=photos, messenger=messenger, push=push)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return get_store()


@pytest.fixture
def kv(app):
    return get_kv()


@pytest.fixture
def seed(store):
    """Akun tiap role, kode teknisi A1, partner REF7, dan beberapa booking."""
    accounts = store.insert("system_accounts", [
        {"username": "admin", "password": "admin123", "name": "Admin", "role": "admin"},
        {"username": "manager", "password": "manager123", "name": "Manager", "role": "manager"},
        {"username": "andi", "password": "andi123", "name": "Andi", "role": "teknisi"},
        {"username": "budi", "password": "budi123", "name": "Budi", "role": "teknisi"},
        {"username": "heru", "password": "heru123", "name": "Heru", "role": "helper"},
        {"username": "lama", "password": "lama123", "name": "Lama", "role": "teknisi", "active": False},
    ])
    by_name = {a["username"]: a for a in accounts}
    store.insert("technician_codes", [
        {"code": "A1", "name": "Andi", "account_id": by_name["andi"]["id"], "sort_order": 1},
        {"code": "B1", "name": "Budi", "account_id": by_name["budi"]["id"], "sort_order": 2},
    ])
    store.insert("partners", {
        "partner_id": "REF7",
        "nama_lengkap": "Rina Affiliate",
        "nomor_whatsapp": "081299990007",
        "status": "active",
        "total_poin": 0,
    })
    tomorrow = (today_local_date() + timedelta(days=1)).isoformat()
    bookings = store.insert("bookings", [
        {
            "booking_id": "AFC-001", "nama": "Pak Joko", "no_hp": "081234567890",
            "alamat": "Jl. Mawar 1", "jenis_layanan": "Cuci AC", "jumlah_unit": 2,
            "tanggal_kunjungan": tomorrow, "waktu_kunjungan": "09:00", "kode_teknisi": "A1",
            "teknisi": "Andi", "status": "confirmed", "kode_referral": "REF7",
        },
        {
            "booking_id": "AFC-002", "nama": "Bu Sari", "no_hp": "081355551111",
            "alamat": "Jl. Melati 2", "jenis_layanan": "Perbaikan", "jumlah_unit": 1,
            "tanggal_kunjungan": tomorrow, "waktu_kunjungan": "13:00", "kode_teknisi": "B1",
            "teknisi": "Budi", "status": "pending",
        },
        {
            "booking_id": "AFC-003", "nama": "Pak Dodi", "no_hp": "081377772222",
            "alamat": "Jl. Kenanga 3", "jenis_layanan": "Cuci AC", "jumlah_unit": 1,
            "tanggal_kunjungan": "2024-01-10", "waktu_kunjungan": "10:00", "kode_teknisi": "A1",
            "status": "selesai",
        },
    ])
    return {"accounts": by_name, "bookings": {b["booking_id"]: b for b in bookings}}


def login(client, username, password):
    res = client.post("/api/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.get_json()
    return {"Authorization": f"Bearer {res.get_json()['token']}"}


@pytest.fixture
def as_admin(client, seed):
    return login(client, "admin", "admin123")


@pytest.fixture
def as_manager(client, seed):
    return login(client, "manager", "manager123")


@pytest.fixture
def as_teknisi(client, seed):
    return login(client, "andi", "andi123")


def report_form(booking_id="AFC-001", units=2, **overrides):
    form = {
        "booking_id": booking_id,
        "nama_pelanggan": "Pak Joko",
        "no_wa_pelanggan": "081234567890",
        "alamat_pelanggan": "Jl. Mawar 1",
        "jenis_pekerjaan": ["Cuci AC"],
        "teknisi": "A1",
        "helper": "Heru",
        "units": [
            {"no_unit": str(i + 1), "merk": f"Merk{i + 1}", "spek_unit": "1 PK", "keterangan": f"unit {i + 1} ok"}
            for i in range(units)
        ],
    }
    form.update(overrides)
    return form


def minutes_ago(n: int) -> str:
    return (now_utc() - timedelta(minutes=n)).isoformat()
