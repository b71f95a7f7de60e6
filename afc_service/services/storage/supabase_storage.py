from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from uuid import uuid4

from ...extensions import get_supabase

logger = logging.getLogger(__name__)


def _sanitize_ext(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    ext = re.sub(r"[^A-Za-z0-9.]", "", ext).lower()
    return ext or ".jpg"


def build_photo_path(filename: str) -> str:
    """Return storage path for work report photos under work-reports/"""
    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = uuid4().hex[:10]
    return f"work-reports/{timestamp}-{suffix}{_sanitize_ext(filename)}"


def encode_photo_urls(urls: list[str] | None) -> str | None:
    """Kolom foto_url menyimpan satu teks: None bila kosong, selain itu array JSON."""
    cleaned = [u for u in (urls or []) if u]
    if not cleaned:
        return None
    return json.dumps(cleaned)


def decode_photo_urls(value) -> list[str]:
    """Terima URL tunggal atau array JSON (data lama menyimpan keduanya)."""
    if not value:
        return []
    if isinstance(value, list):
        return [str(v) for v in value if v]
    text = str(value).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            return [text]
        return [str(v) for v in parsed if v]
    return [text]


class SupabasePhotoStorage:
    """Unggah foto ke bucket publik Supabase dan kembalikan URL publiknya."""

    def __init__(self, bucket: str):
        self.bucket = bucket

    def upload(self, data: bytes, filename: str, content_type: str | None = None) -> str:
        sb = get_supabase()
        assert sb is not None, "Supabase not configured"
        path = build_photo_path(filename)
        sb.storage.from_(self.bucket).upload(path, data, {
            "content-type": content_type or "image/jpeg",
            "x-upsert": "true",
        })
        url = sb.storage.from_(self.bucket).get_public_url(path)
        logger.info("Foto diunggah ke %s/%s", self.bucket, path)
        return url if isinstance(url, str) else str(url)
