from __future__ import annotations

from functools import lru_cache
import os

from .base import BackendError, DataBackend, Filters, Row


@lru_cache(maxsize=1)
def get_backend() -> DataBackend:
    kind = os.getenv("DATA_BACKEND", "rest").strip().lower()
    if kind == "sql":
        from db.session import SessionLocal

        from .sql import SqlBackend

        return SqlBackend(SessionLocal)
    from .rest import RestBackend, load_rest_config

    return RestBackend(load_rest_config())


__all__ = ["BackendError", "DataBackend", "Filters", "Row", "get_backend"]
