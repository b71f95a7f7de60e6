# afc_service/store/base.py
"""
Antarmuka tabel generik yang dipakai seluruh layanan.

Semua layanan hanya bergantung pada operasi di sini (filter kesamaan,
keanggotaan himpunan, pola, urutan, limit, insert/update/delete dengan baris
hasil), sehingga backend Supabase dan SQLAlchemy bisa saling menggantikan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


@dataclass(frozen=True)
class Filter:
    column: str
    op: str  # eq, neq, in, not_in, like, ilike, gte, lte, lt, gt, is_null, not_null
    value: Any = None


@dataclass
class Query:
    table: str
    filters: list[Filter] = field(default_factory=list)
    orders: list[tuple[str, bool]] = field(default_factory=list)
    limit_n: int | None = None
    offset_n: int | None = None
    columns: tuple[str, ...] | None = None

    def _add(self, column: str, op: str, value: Any = None) -> "Query":
        self.filters.append(Filter(column, op, value))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> "Query":
        return self._add(column, "neq", value)

    def in_(self, column: str, values: Iterable[Any]) -> "Query":
        return self._add(column, "in", list(values))

    def not_in(self, column: str, values: Iterable[Any]) -> "Query":
        return self._add(column, "not_in", list(values))

    def like(self, column: str, pattern: str) -> "Query":
        return self._add(column, "like", pattern)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self._add(column, "ilike", pattern)

    def gte(self, column: str, value: Any) -> "Query":
        return self._add(column, "gte", value)

    def gt(self, column: str, value: Any) -> "Query":
        return self._add(column, "gt", value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._add(column, "lte", value)

    def lt(self, column: str, value: Any) -> "Query":
        return self._add(column, "lt", value)

    def is_null(self, column: str) -> "Query":
        return self._add(column, "is_null")

    def not_null(self, column: str) -> "Query":
        return self._add(column, "not_null")

    def order(self, column: str, desc: bool = False) -> "Query":
        self.orders.append((column, desc))
        return self

    def limit(self, n: int) -> "Query":
        self.limit_n = n
        return self

    def offset(self, n: int) -> "Query":
        self.offset_n = n
        return self

    def select(self, *columns: str) -> "Query":
        self.columns = tuple(columns) or None
        return self


def table(name: str) -> Query:
    return Query(name)


@dataclass(frozen=True)
class Write:
    """Satu penulisan di dalam Store.batch()."""

    kind: str  # insert, update, delete
    table: str
    query: Query | None = None
    values: Any = None

    @classmethod
    def insert(cls, table_name: str, rows: dict | list[dict]) -> "Write":
        return cls("insert", table_name, values=[rows] if isinstance(rows, dict) else list(rows))

    @classmethod
    def update(cls, query: Query, values: dict) -> "Write":
        return cls("update", query.table, query=query, values=dict(values))

    @classmethod
    def delete(cls, query: Query) -> "Write":
        return cls("delete", query.table, query=query)


class Store:
    """Kontrak penyimpanan data. Semua kegagalan dilempar sebagai StoreError."""

    backend_name = "abstract"

    def select(self, query: Query) -> list[dict]:
        raise NotImplementedError

    def first(self, query: Query) -> dict | None:
        query.limit(1)
        rows = self.select(query)
        return rows[0] if rows else None

    def count(self, query: Query) -> int:
        return len(self.select(query))

    def insert(self, table_name: str, rows: dict | list[dict]) -> list[dict]:
        raise NotImplementedError

    def update(self, query: Query, values: dict) -> list[dict]:
        raise NotImplementedError

    def delete(self, query: Query) -> list[dict]:
        raise NotImplementedError

    def claim(self, query: Query, values: dict) -> dict | None:
        """
        Update bersyarat satu baris: pilih satu baris yang cocok dengan query,
        lalu update hanya jika baris itu masih cocok. None bila tidak ada
        baris yang berhasil diklaim.
        """
        raise NotImplementedError

    def increment(self, table_name: str, column: str, key_column: str, key: Any, by: int = 1) -> int | None:
        """Penambahan atomik di sisi penyimpanan; None bila baris tidak ada."""
        raise NotImplementedError

    def batch(self, writes: list[Write]) -> None:
        """Jalankan semua penulisan dalam satu transaksi: semua tersimpan atau tidak sama sekali."""
        raise NotImplementedError

    def ping(self) -> bool:
        try:
            self.select(Query("system_accounts").limit(1))
            return True
        except Exception:
            return False
