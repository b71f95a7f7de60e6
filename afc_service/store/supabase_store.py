# afc_service/store/supabase_store.py

from __future__ import annotations

import logging
from typing import Any

from supabase import Client

from ..errors import StoreError
from .base import Query, Store, Write

logger = logging.getLogger(__name__)

_CLAIM_ATTEMPTS = 5

# Operator filter yang dipahami fungsi apply_batch di Postgres
_BATCH_FILTER_OPS = ("eq", "in")

# Kunci utama tiap tabel hosted (partners memakai partner_id)
PRIMARY_KEYS = {"partners": "partner_id"}


def _pk(table_name: str) -> str:
    return PRIMARY_KEYS.get(table_name, "id")


def _apply_filters(builder, query: Query):
    for f in query.filters:
        op, col, val = f.op, f.column, f.value
        if op == "eq":
            builder = builder.eq(col, val)
        elif op == "neq":
            builder = builder.neq(col, val)
        elif op == "in":
            builder = builder.in_(col, val)
        elif op == "not_in":
            # Baris dengan nilai NULL ikut disertakan, sama seperti SqlStore
            values = ",".join(str(v) for v in val)
            builder = builder.or_(f"{col}.is.null,{col}.not.in.({values})")
        elif op == "like":
            builder = builder.like(col, val)
        elif op == "ilike":
            builder = builder.ilike(col, val)
        elif op == "gte":
            builder = builder.gte(col, val)
        elif op == "gt":
            builder = builder.gt(col, val)
        elif op == "lte":
            builder = builder.lte(col, val)
        elif op == "lt":
            builder = builder.lt(col, val)
        elif op == "is_null":
            builder = builder.is_(col, "null")
        elif op == "not_null":
            builder = builder.not_.is_(col, "null")
        else:
            raise StoreError(f"Operator filter tidak didukung: {op}")
    return builder


def _apply_window(builder, query: Query):
    for col, desc in query.orders:
        builder = builder.order(col, desc=desc)
    if query.limit_n is not None:
        start = query.offset_n or 0
        builder = builder.range(start, start + query.limit_n - 1)
    return builder


class SupabaseStore(Store):
    """Store di atas PostgREST Supabase (query builder supabase-py)."""

    backend_name = "supabase"

    def __init__(self, client: Client):
        self.client = client

    def _run(self, what: str, fn):
        try:
            res = fn()
        except StoreError:
            raise
        except Exception as e:
            logger.error("Supabase %s gagal: %s", what, e, exc_info=True)
            raise StoreError(f"Gagal {what}")
        return res.data if res.data is not None else []

    def select(self, query: Query) -> list[dict]:
        cols = ",".join(query.columns) if query.columns else "*"

        def _do():
            b = self.client.table(query.table).select(cols)
            b = _apply_filters(b, query)
            b = _apply_window(b, query)
            return b.execute()

        return self._run(f"membaca {query.table}", _do)

    def insert(self, table_name: str, rows: dict | list[dict]) -> list[dict]:
        return self._run(
            f"menyimpan ke {table_name}",
            lambda: self.client.table(table_name).insert(rows).execute(),
        )

    def update(self, query: Query, values: dict) -> list[dict]:
        if not query.filters:
            raise StoreError("Update tanpa filter ditolak")

        def _do():
            b = self.client.table(query.table).update(values)
            return _apply_filters(b, query).execute()

        return self._run(f"mengubah {query.table}", _do)

    def delete(self, query: Query) -> list[dict]:
        if not query.filters:
            raise StoreError("Delete tanpa filter ditolak")

        def _do():
            b = self.client.table(query.table).delete()
            return _apply_filters(b, query).execute()

        return self._run(f"menghapus dari {query.table}", _do)

    def claim(self, query: Query, values: dict) -> dict | None:
        pk = _pk(query.table)
        for _ in range(_CLAIM_ATTEMPTS):
            pick = Query(query.table, list(query.filters), list(query.orders)).select(pk).limit(1)
            rows = self.select(pick)
            if not rows:
                return None
            target = Query(query.table, list(query.filters)).eq(pk, rows[0][pk])
            updated = self.update(target, values)
            if len(updated) == 1:
                return updated[0]
        return None

    def increment(self, table_name: str, column: str, key_column: str, key: Any, by: int = 1) -> int | None:
        # Fungsi Postgres: scripts/supabase_functions.sql
        fn = f"increment_{table_name}_{column}"

        def _do():
            return self.client.rpc(fn, {"p_key": key, "p_by": by}).execute()

        data = self._run(f"menambah {table_name}.{column}", _do)
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = data.get(fn, data.get(column))
        return int(data) if data is not None else None

    def batch(self, writes: list[Write]) -> None:
        # Satu panggilan RPC = satu transaksi Postgres (scripts/supabase_functions.sql)
        ops = []
        for w in writes:
            filters = []
            for f in (w.query.filters if w.query else []):
                if f.op not in _BATCH_FILTER_OPS:
                    raise StoreError(f"Operator filter tidak didukung dalam batch: {f.op}")
                filters.append({"column": f.column, "op": f.op, "value": f.value})
            if w.kind in ("update", "delete") and not filters:
                raise StoreError(f"{w.kind} tanpa filter ditolak")
            op = {"kind": w.kind, "table": w.table, "filters": filters}
            if w.kind == "insert":
                op["rows"] = w.values
            elif w.kind == "update":
                op["values"] = w.values
            ops.append(op)

        self._run("menyimpan perubahan", lambda: self.client.rpc("apply_batch", {"p_ops": ops}).execute())
