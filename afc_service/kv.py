# afc_service/kv.py
"""
Penyimpanan key/value yang tahan restart: identitas sesi, waktu aktivitas
terakhir, daftar dedup notifikasi, preferensi, dan antrean laporan offline.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Optional

import redis


class KeyValueStore:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> None:
        raise NotImplementedError

    def keys(self, pattern: str) -> list[str]:
        raise NotImplementedError

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.set(key, json.dumps(value, default=str), ttl=ttl)

    def push_capped(self, key: str, values: list[str], limit: int) -> list[str]:
        """Tambah id ke daftar (tanpa duplikat), simpan hanya `limit` terakhir."""
        current = self.get_json(key, []) or []
        for v in values:
            if v not in current:
                current.append(v)
        current = current[-limit:]
        self.set_json(key, current)
        return current

    def append_json(self, key: str, items: list[Any]) -> int:
        current = self.get_json(key, []) or []
        current.extend(items)
        self.set_json(key, current)
        return len(current)


class MemoryKeyValue(KeyValueStore):
    """Dipakai untuk pengujian dan pengembangan lokal tanpa Redis."""

    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _alive(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires = item
        if expires is not None and expires <= time.time():
            self._data.pop(key, None)
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._alive(key)

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        with self._lock:
            self._data[key] = (value, time.time() + ttl if ttl else None)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for k in keys:
                self._data.pop(k, None)

    def keys(self, pattern: str) -> list[str]:
        prefix = pattern.rstrip("*")
        with self._lock:
            return [k for k in list(self._data) if k.startswith(prefix) and self._alive(k) is not None]


class RedisKeyValue(KeyValueStore):
    def __init__(self, url: str):
        self.client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self.client.set(key, value, ex=ttl)

    def delete(self, *keys: str) -> None:
        if keys:
            self.client.delete(*keys)

    def keys(self, pattern: str) -> list[str]:
        return list(self.client.scan_iter(match=pattern))
