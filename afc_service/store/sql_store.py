# afc_service/store/sql_store.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, DateTime, and_, func, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..db import get_session
from ..db.models import TABLES
from ..errors import StoreError
from ..utils.timez import parse_timestamp
from .base import Filter, Query, Store, Write

logger = logging.getLogger(__name__)

_CLAIM_ATTEMPTS = 5


def _model(table_name: str):
    try:
        return TABLES[table_name]
    except KeyError:
        raise StoreError(f"Tabel tidak dikenal: {table_name}")


def _column(model, name: str):
    col = model.__table__.columns.get(name)
    if col is None:
        raise StoreError(f"Kolom '{name}' tidak ada di tabel {model.__tablename__}")
    return col


def _coerce(col, value: Any) -> Any:
    """Samakan nilai dengan tipe kolom: datetime disimpan naive UTC."""
    if value is None:
        return None
    if isinstance(col.type, DateTime):
        dt = parse_timestamp(value)
        return dt.replace(tzinfo=None) if dt else None
    if isinstance(col.type, Boolean):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)
    return value


def _to_dict(obj) -> dict:
    out = {}
    for col in obj.__table__.columns:
        v = getattr(obj, col.key)
        if isinstance(v, datetime):
            v = v.replace(tzinfo=timezone.utc).isoformat()
        out[col.key] = v
    return out


def _clause(model, f: Filter):
    col = _column(model, f.column)
    op = f.op
    if op == "eq":
        return col == _coerce(col, f.value)
    if op == "neq":
        return col != _coerce(col, f.value)
    if op == "in":
        return col.in_([_coerce(col, v) for v in f.value])
    if op == "not_in":
        # NULL ikut disertakan (baris lama tanpa status)
        return (col.notin_([_coerce(col, v) for v in f.value])) | col.is_(None)
    if op == "like":
        return col.like(f.value)
    if op == "ilike":
        return col.ilike(f.value)
    if op == "gte":
        return col >= _coerce(col, f.value)
    if op == "gt":
        return col > _coerce(col, f.value)
    if op == "lte":
        return col <= _coerce(col, f.value)
    if op == "lt":
        return col < _coerce(col, f.value)
    if op == "is_null":
        return col.is_(None)
    if op == "not_null":
        return col.isnot(None)
    raise StoreError(f"Operator filter tidak didukung: {op}")


def _where(model, query: Query):
    clauses = [_clause(model, f) for f in query.filters]
    return and_(*clauses) if clauses else None


def _pk(model):
    return inspect(model).primary_key[0]


class SqlStore(Store):
    """Implementasi Store di atas SQLAlchemy (Postgres self-hosted atau SQLite)."""

    backend_name = "sql"

    def _stmt(self, query: Query):
        model = _model(query.table)
        stmt = select(model)
        where = _where(model, query)
        if where is not None:
            stmt = stmt.where(where)
        for name, desc in query.orders:
            col = _column(model, name)
            stmt = stmt.order_by(col.desc() if desc else col.asc())
        if query.offset_n:
            stmt = stmt.offset(query.offset_n)
        if query.limit_n is not None:
            stmt = stmt.limit(query.limit_n)
        return model, stmt

    def select(self, query: Query) -> list[dict]:
        model, stmt = self._stmt(query)
        try:
            with get_session() as s:
                rows = [_to_dict(o) for o in s.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error("select %s gagal: %s", query.table, e, exc_info=True)
            raise StoreError(f"Gagal membaca {query.table}")
        if query.columns:
            rows = [{k: r.get(k) for k in query.columns} for r in rows]
        return rows

    def count(self, query: Query) -> int:
        model = _model(query.table)
        stmt = select(func.count()).select_from(model)
        where = _where(model, query)
        if where is not None:
            stmt = stmt.where(where)
        try:
            with get_session() as s:
                return int(s.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            logger.error("count %s gagal: %s", query.table, e, exc_info=True)
            raise StoreError(f"Gagal menghitung {query.table}")

    # --- penulisan di dalam satu sesi (dipakai juga oleh batch) ---

    def _insert_in(self, s, table_name: str, items: list[dict]) -> list:
        model = _model(table_name)
        objs = []
        for row in items:
            values = {k: _coerce(_column(model, k), v) for k, v in row.items()}
            obj = model(**values)
            s.add(obj)
            objs.append(obj)
        return objs

    def _update_in(self, s, query: Query, values: dict) -> list:
        model, stmt = self._stmt(query)
        coerced = {k: _coerce(_column(model, k), v) for k, v in values.items()}
        objs = s.execute(stmt).scalars().all()
        for obj in objs:
            for k, v in coerced.items():
                setattr(obj, k, v)
        return objs

    def _delete_in(self, s, query: Query) -> list[dict]:
        _, stmt = self._stmt(query)
        objs = s.execute(stmt).scalars().all()
        out = [_to_dict(o) for o in objs]
        for obj in objs:
            s.delete(obj)
        return out

    def insert(self, table_name: str, rows: dict | list[dict]) -> list[dict]:
        items = [rows] if isinstance(rows, dict) else list(rows)
        try:
            with get_session() as s:
                objs = self._insert_in(s, table_name, items)
                s.commit()
                return [_to_dict(o) for o in objs]
        except SQLAlchemyError as e:
            logger.error("insert %s gagal: %s", table_name, e, exc_info=True)
            raise StoreError(f"Gagal menyimpan ke {table_name}")

    def update(self, query: Query, values: dict) -> list[dict]:
        try:
            with get_session() as s:
                objs = self._update_in(s, query, values)
                s.commit()
                return [_to_dict(o) for o in objs]
        except SQLAlchemyError as e:
            logger.error("update %s gagal: %s", query.table, e, exc_info=True)
            raise StoreError(f"Gagal mengubah {query.table}")

    def delete(self, query: Query) -> list[dict]:
        try:
            with get_session() as s:
                out = self._delete_in(s, query)
                s.commit()
                return out
        except SQLAlchemyError as e:
            logger.error("delete %s gagal: %s", query.table, e, exc_info=True)
            raise StoreError(f"Gagal menghapus dari {query.table}")

    def batch(self, writes: list[Write]) -> None:
        try:
            with get_session() as s:
                for w in writes:
                    if w.kind == "insert":
                        self._insert_in(s, w.table, w.values)
                    elif w.kind == "update":
                        self._update_in(s, w.query, w.values)
                    elif w.kind == "delete":
                        self._delete_in(s, w.query)
                    else:
                        raise StoreError(f"Jenis penulisan tidak dikenal: {w.kind}")
                    s.flush()
                s.commit()
        except SQLAlchemyError as e:
            # Sesi ditutup tanpa commit sehingga semua penulisan dibatalkan
            logger.error("batch %d penulisan gagal: %s", len(writes), e, exc_info=True)
            raise StoreError("Gagal menyimpan perubahan")

    def claim(self, query: Query, values: dict) -> dict | None:
        model = _model(query.table)
        pk = _pk(model)
        where = _where(model, query)
        coerced = {k: _coerce(_column(model, k), v) for k, v in values.items()}
        try:
            with get_session() as s:
                for _ in range(_CLAIM_ATTEMPTS):
                    pick = select(pk)
                    if where is not None:
                        pick = pick.where(where)
                    for name, desc in query.orders:
                        col = _column(model, name)
                        pick = pick.order_by(col.desc() if desc else col.asc())
                    candidate = s.execute(pick.limit(1)).scalar_one_or_none()
                    if candidate is None:
                        return None

                    # Compare-and-set: filter asli ikut di WHERE supaya baris
                    # yang sudah diklaim sesi lain tidak ikut ter-update.
                    stmt = update(model).where(pk == candidate)
                    if where is not None:
                        stmt = stmt.where(where)
                    res = s.execute(stmt.values(**coerced))
                    if res.rowcount == 1:
                        s.commit()
                        obj = s.get(model, candidate)
                        s.refresh(obj)
                        return _to_dict(obj)
                    s.rollback()
                return None
        except SQLAlchemyError as e:
            logger.error("claim %s gagal: %s", query.table, e, exc_info=True)
            raise StoreError(f"Gagal mengklaim baris {query.table}")

    def increment(self, table_name: str, column: str, key_column: str, key: Any, by: int = 1) -> int | None:
        model = _model(table_name)
        col = _column(model, column)
        key_col = _column(model, key_column)
        try:
            with get_session() as s:
                res = s.execute(
                    update(model)
                    .where(key_col == key)
                    .values({col.key: func.coalesce(col, 0) + by})
                )
                if res.rowcount == 0:
                    s.rollback()
                    return None
                new_value = s.execute(select(col).where(key_col == key)).scalar_one()
                s.commit()
                return int(new_value)
        except SQLAlchemyError as e:
            logger.error("increment %s.%s gagal: %s", table_name, column, e, exc_info=True)
            raise StoreError(f"Gagal menambah {table_name}.{column}")
