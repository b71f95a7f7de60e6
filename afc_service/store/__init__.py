from .base import Filter, Query, Store, table

__all__ = ["Filter", "Query", "Store", "table"]
