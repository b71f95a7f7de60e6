# afc_service/services/auth_service.py

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from flask import current_app

from ..errors import AuthError, StoreError
from ..extensions import get_kv, get_store
from ..store.base import Query
from ..utils.timez import now_utc, parse_timestamp

logger = logging.getLogger(__name__)

ROLES = ("admin", "manager", "teknisi", "helper")
LOGIN_FAILED = "Username atau password salah"

# Menu yang boleh tampil per role (navigasi aplikasi lama)
ROUTE_ACCESS: Dict[str, tuple[str, ...]] = {
    "dashboard": ("admin", "manager", "teknisi"),
    "schedule": ROLES,
    "calendar": ROLES,
    "work-report": ("admin", "manager"),
    "technician-dashboard": ROLES,
    "approval": ("admin", "manager"),
    "detail-order": ("admin", "manager"),
    "order-history": ("admin", "manager", "teknisi"),
    "affiliates": ("admin", "manager"),
    "admin-panel": ("admin",),
}


def routes_for(role: str) -> List[str]:
    return [name for name, roles in ROUTE_ACCESS.items() if role in roles]


def _active_accounts() -> List[dict]:
    """Akun aktif dari penyimpanan; bila tidak terjangkau pakai FALLBACK_ACCOUNTS."""
    try:
        return get_store().select(Query("system_accounts").eq("active", True))
    except (StoreError, RuntimeError) as e:
        logger.warning("Akun tidak bisa dimuat dari penyimpanan (%s); memakai akun cadangan.", e)
        return [a for a in current_app.config.get("FALLBACK_ACCOUNTS", []) if a.get("active", True)]


def technician_code_for(account: dict) -> Optional[str]:
    """Kode teknisi milik akun: dicari lewat account_id, lalu lewat nama."""
    if account.get("role") != "teknisi":
        return None
    if account.get("technician_code"):
        return account["technician_code"]
    try:
        store = get_store()
        row = None
        if account.get("id"):
            row = store.first(Query("technician_codes").eq("account_id", account["id"]).eq("active", True))
        if row is None and account.get("name"):
            row = store.first(Query("technician_codes").eq("name", account["name"]).eq("active", True))
    except (StoreError, RuntimeError):
        logger.warning("Kode teknisi untuk %s tidak bisa dimuat", account.get("username"), exc_info=True)
        return None
    return row["code"] if row else None


def _identity(account: dict) -> Dict[str, Any]:
    return {
        "username": account["username"],
        "name": account.get("name") or account["username"],
        "role": account.get("role"),
        "technician_code": technician_code_for(account),
    }


def login(username: str, password: str) -> Dict[str, Any]:
    username = (username or "").strip()
    if not username or not password:
        raise AuthError(LOGIN_FAILED)

    account = next((a for a in _active_accounts() if a.get("username") == username), None)
    # Perbandingan plaintext, sama seperti data akun yang tersimpan
    if account is None or account.get("password") != password:
        logger.info("Login gagal untuk '%s'", username)
        raise AuthError(LOGIN_FAILED)

    identity = _identity(account)
    token = secrets.token_urlsafe(32)
    ttl = current_app.config.get("SESSION_TTL_SECONDS", 21600)
    try:
        kv = get_kv()
        kv.set_json(f"session:{token}", identity, ttl=ttl * 2)
        kv.set(f"last_activity:{token}", now_utc().isoformat(), ttl=ttl * 2)
    except Exception:
        logger.exception("Gagal menyimpan sesi untuk %s", username)

    logger.info("Login berhasil: %s (%s)", username, identity["role"])
    return {"token": token, "user": identity}


def _expired(last_activity: Optional[str]) -> bool:
    ts = parse_timestamp(last_activity)
    if ts is None:
        return True
    ttl = current_app.config.get("SESSION_TTL_SECONDS", 21600)
    return (now_utc() - ts).total_seconds() > ttl


def resolve(token: str) -> Dict[str, Any]:
    """Identitas untuk token; sesi yang tidak aktif lebih dari TTL dibersihkan."""
    if not token:
        raise AuthError()
    kv = get_kv()
    identity = kv.get_json(f"session:{token}")
    if not identity:
        raise AuthError()
    if _expired(kv.get(f"last_activity:{token}")):
        logout(token)
        raise AuthError("Sesi berakhir, silakan login kembali")
    return identity


def touch(token: str) -> None:
    ttl = current_app.config.get("SESSION_TTL_SECONDS", 21600)
    kv = get_kv()
    kv.set(f"last_activity:{token}", now_utc().isoformat(), ttl=ttl * 2)
    identity = kv.get(f"session:{token}")
    if identity is not None:
        kv.set(f"session:{token}", identity, ttl=ttl * 2)


def logout(token: str) -> None:
    get_kv().delete(f"session:{token}", f"last_activity:{token}")


def sweep_expired() -> int:
    kv = get_kv()
    removed = 0
    for key in kv.keys("session:*"):
        token = key.split(":", 1)[1]
        if _expired(kv.get(f"last_activity:{token}")):
            logout(token)
            removed += 1
    if removed:
        logger.info("Sesi kedaluwarsa dihapus: %d", removed)
    return removed
