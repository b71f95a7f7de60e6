# afc_service/services/account_service.py
"""
Pengelolaan akun sistem dan kode teknisi dari panel admin.

Perubahan dikumpulkan dalam EditSession (nilai immutable). Setiap aksi
mengembalikan sesi baru; apply() menyimpan semuanya sekaligus, discard()
kembali ke snapshot awal.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from ..errors import NotFound, ValidationError
from ..extensions import get_kv, get_store
from ..store.base import Query, Write
from .auth_service import ROLES

logger = logging.getLogger(__name__)

NEW_PREFIX = "new:"
_ACCOUNT_FIELDS = ("username", "password", "name", "role", "active")
_CODE_FIELDS = ("code", "name", "account_id", "active", "sort_order")


def list_accounts() -> List[dict]:
    role_order = {r: i for i, r in enumerate(ROLES)}
    rows = get_store().select(Query("system_accounts").order("name"))
    return sorted(rows, key=lambda r: (role_order.get(r.get("role"), 99), (r.get("name") or "").lower()))


def list_technician_codes(active_only: bool = False) -> List[dict]:
    q = Query("technician_codes")
    if active_only:
        q.eq("active", True)
    return get_store().select(q.order("sort_order").order("code"))


def public_account(account: dict) -> dict:
    return {k: v for k, v in account.items() if k != "password"}


@dataclass(frozen=True)
class EditSession:
    snapshot: Tuple[Dict[str, Any], ...] = ()
    added: Tuple[Dict[str, Any], ...] = ()
    updated: Tuple[Tuple[str, Dict[str, Any]], ...] = ()
    deleted: frozenset = field(default_factory=frozenset)
    tech_code_updates: Tuple[Tuple[str, Dict[str, Any]], ...] = ()

    @classmethod
    def start(cls, accounts: List[dict]) -> "EditSession":
        return cls(snapshot=tuple(dict(a) for a in accounts))

    # --- tampilan ---

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.deleted or self.tech_code_updates)

    def _updates(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.updated)

    def accounts(self) -> List[dict]:
        """Daftar akun seperti yang akan tersimpan setelah apply()."""
        changes = self._updates()
        out = []
        for acc in self.snapshot:
            if acc["id"] in self.deleted:
                continue
            out.append({**acc, **changes.get(acc["id"], {})})
        return out + [dict(a) for a in self.added]

    def _find(self, account_id: str) -> dict:
        for acc in self.accounts():
            if acc["id"] == account_id:
                return acc
        raise NotFound(f"Akun {account_id} tidak ditemukan")

    def _check_unique(self, username: str, exclude_id: Optional[str] = None) -> None:
        for acc in self.accounts():
            if acc["id"] != exclude_id and acc.get("username") == username:
                raise ValidationError(f"Username '{username}' sudah dipakai")

    # --- aksi ---

    def add_account(self, username: str, password: str, name: str, role: str) -> "EditSession":
        values = _validate_account({"username": username, "password": password, "name": name, "role": role})
        self._check_unique(values["username"])
        acc = {"id": f"{NEW_PREFIX}{uuid.uuid4().hex[:8]}", **values, "active": True, "is_default": False}
        return replace(self, added=self.added + (acc,))

    def update_account(self, account_id: str, **changes) -> "EditSession":
        current = self._find(account_id)
        changes = {k: v for k, v in changes.items() if k in _ACCOUNT_FIELDS}
        merged = _validate_account({**current, **changes})
        if merged["username"] != current.get("username"):
            self._check_unique(merged["username"], exclude_id=account_id)

        if account_id.startswith(NEW_PREFIX):
            added = tuple({**a, **changes} if a["id"] == account_id else a for a in self.added)
            return replace(self, added=added)
        updates = self._updates()
        updates[account_id] = {**updates.get(account_id, {}), **changes}
        return replace(self, updated=tuple(updates.items()))

    def toggle_active(self, account_id: str) -> "EditSession":
        current = self._find(account_id)
        return self.update_account(account_id, active=not bool(current.get("active", True)))

    def delete_account(self, account_id: str) -> "EditSession":
        current = self._find(account_id)
        if account_id.startswith(NEW_PREFIX):
            # Akun yang belum tersimpan cukup dibuang dari daftar
            return replace(self, added=tuple(a for a in self.added if a["id"] != account_id))
        if current.get("is_default"):
            raise ValidationError("Akun default tidak bisa dihapus")
        updates = self._updates()
        updates.pop(account_id, None)
        return replace(self, updated=tuple(updates.items()), deleted=self.deleted | {account_id})

    def update_technician_code(self, code_id: str, **changes) -> "EditSession":
        changes = {k: v for k, v in changes.items() if k in _CODE_FIELDS}
        if not changes:
            raise ValidationError("Tidak ada perubahan kode teknisi")
        if "code" in changes and not str(changes["code"] or "").strip():
            raise ValidationError("Kode teknisi tidak boleh kosong")
        pending = dict(self.tech_code_updates)
        pending[code_id] = {**pending.get(code_id, {}), **changes}
        return replace(self, tech_code_updates=tuple(pending.items()))

    # --- serialisasi untuk key/value store ---

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot": list(self.snapshot),
            "added": list(self.added),
            "updated": [list(p) for p in self.updated],
            "deleted": sorted(self.deleted),
            "tech_code_updates": [list(p) for p in self.tech_code_updates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EditSession":
        return cls(
            snapshot=tuple(data.get("snapshot") or ()),
            added=tuple(data.get("added") or ()),
            updated=tuple((k, v) for k, v in data.get("updated") or ()),
            deleted=frozenset(data.get("deleted") or ()),
            tech_code_updates=tuple((k, v) for k, v in data.get("tech_code_updates") or ()),
        )


def _validate_account(values: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(values)
    for name in ("username", "password", "name", "role"):
        text = str(out.get(name) or "").strip()
        if not text:
            raise ValidationError(f"Field '{name}' wajib diisi")
        out[name] = text
    if out["role"] not in ROLES:
        raise ValidationError(f"Role tidak dikenal: {out['role']}")
    return out


def apply(session: EditSession) -> Dict[str, int]:
    """
    Simpan semua perubahan sesi dalam satu transaksi: insert, update, delete,
    lalu kode teknisi. Bila gagal tidak ada yang tersimpan dan sesi tetap utuh.
    """
    writes = []
    if session.added:
        writes.append(Write.insert("system_accounts", [
            {k: a[k] for k in ("username", "password", "name", "role", "active", "is_default")}
            for a in session.added
        ]))
    for account_id, changes in session.updated:
        writes.append(Write.update(Query("system_accounts").eq("id", account_id), changes))
    if session.deleted:
        writes.append(Write.delete(Query("system_accounts").in_("id", sorted(session.deleted))))
    for code_id, changes in session.tech_code_updates:
        writes.append(Write.update(Query("technician_codes").eq("id", code_id), changes))
    if writes:
        get_store().batch(writes)

    summary = {
        "added": len(session.added),
        "updated": len(session.updated),
        "deleted": len(session.deleted),
        "technician_codes": len(session.tech_code_updates),
    }
    logger.info("Perubahan akun disimpan: %s", summary)
    return summary


def discard(session: EditSession) -> List[dict]:
    return list(session.snapshot)


# ---------- sesi edit per admin ----------

def _key(username: str) -> str:
    return f"edit:{username}"


def load_edit(username: str) -> EditSession:
    data = get_kv().get_json(_key(username))
    if data:
        return EditSession.from_dict(data)
    session = EditSession.start(list_accounts())
    save_edit(username, session)
    return session


def save_edit(username: str, session: EditSession) -> EditSession:
    get_kv().set_json(_key(username), session.to_dict())
    return session


def apply_edit(username: str) -> Dict[str, int]:
    summary = apply(load_edit(username))
    get_kv().delete(_key(username))
    return summary


def discard_edit(username: str) -> List[dict]:
    snapshot = discard(load_edit(username))
    get_kv().delete(_key(username))
    return snapshot
