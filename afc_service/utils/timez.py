from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_TZ = "Asia/Jakarta"


def _tz() -> ZoneInfo:
    name = DEFAULT_TZ
    if has_app_context():
        name = current_app.config.get("TIMEZONE", DEFAULT_TZ)
    return ZoneInfo(name)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    return now_utc().astimezone(_tz())


def today_local_date() -> date:
    return now_local().date()


def tomorrow_local_date() -> date:
    return today_local_date() + timedelta(days=1)


def iso_now() -> str:
    return now_utc().replace(microsecond=0).isoformat()


def parse_timestamp(value) -> datetime | None:
    """Terima datetime atau string ISO (termasuk akhiran 'Z'); hasil selalu aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_visit_date(value) -> date | None:
    """Tanggal kunjungan bisa ISO (YYYY-MM-DD) atau DD/MM/YYYY."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        if "/" in text:
            day, month, year = text.split("/")
            return date(int(year), int(month), int(day))
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def format_ddmmyyyy(value) -> str:
    d = parse_visit_date(value)
    return d.strftime("%d/%m/%Y") if d else str(value or "")
