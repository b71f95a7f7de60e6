# scripts/seed_accounts.py
"""Seeding akun sistem dan kode teknisi awal."""

import os

from afc_service import create_app
from afc_service.extensions import get_store
from afc_service.store.base import Query

# Kode teknisi default (urutan tampil di dashboard teknisi)
technician_codes = [
    {"code": "A1", "name": "Teknisi A1", "sort_order": 1},
    {"code": "A2", "name": "Teknisi A2", "sort_order": 2},
    {"code": "B1", "name": "Teknisi B1", "sort_order": 3},
    {"code": "B2", "name": "Teknisi B2", "sort_order": 4},
]


def seed_technician_codes(store) -> None:
    print("Memulai seeding kode teknisi...")
    for data in technician_codes:
        exists = store.first(Query("technician_codes").eq("code", data["code"]))
        if exists is None:
            store.insert("technician_codes", {**data, "active": True})
            print(f"Kode teknisi dibuat: {data['code']}")
        else:
            store.update(Query("technician_codes").eq("id", exists["id"]),
                         {"name": data["name"], "sort_order": data["sort_order"]})
            print(f"Kode teknisi sudah ada, diperbarui: {data['code']}")


def seed_accounts(store, accounts: list[dict]) -> None:
    """Akun diambil dari FALLBACK_ACCOUNTS supaya kredensial tidak tertulis di kode."""
    print("Memulai seeding akun sistem...")
    for acc in accounts:
        if not acc.get("username") or not acc.get("password"):
            print(f"Akun dilewati (username/password kosong): {acc}")
            continue
        exists = store.first(Query("system_accounts").eq("username", acc["username"]))
        if exists is not None:
            print(f"Akun sudah ada: {acc['username']}")
            continue
        store.insert("system_accounts", {
            "username": acc["username"],
            "password": acc["password"],
            "name": acc.get("name") or acc["username"],
            "role": acc.get("role", "teknisi"),
            "active": acc.get("active", True),
            "is_default": True,
        })
        print(f"Akun dibuat: {acc['username']} ({acc.get('role', 'teknisi')})")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        store = get_store()
        seed_technician_codes(store)
        if os.getenv("SEED_ONLY_CODES"):
            print("SEED_ONLY_CODES di-set; akun tidak disentuh.")
        else:
            seed_accounts(store, app.config.get("FALLBACK_ACCOUNTS", []))
    print("Seeding selesai.")
