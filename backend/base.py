from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

Filters = Mapping[str, Any]
Row = dict[str, Any]


@dataclass(eq=False)
class BackendError(Exception):
    code: str
    message: str
    table: str = ""
    retryable: bool = False

    def __str__(self) -> str:
        where = f"({self.table})" if self.table else ""
        return f"{self.code}{where}: {self.message}"


class DataBackend(Protocol):
    """Row-level access to the hosted tables.

    Filters are equality matches; a list or tuple value matches any of its items.
    """

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]: ...

    def select_one(self, table: str, columns: str = "*", filters: Filters | None = None) -> Row: ...

    def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]: ...

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]: ...

    def delete(self, table: str, filters: Filters) -> list[Row]: ...

    def with_token(self, access_token: str | None) -> "DataBackend": ...


def require_filters(table: str, filters: Filters | None) -> Filters:
    # Unfiltered update/delete would touch every row of the table.
    if not filters:
        raise BackendError(code="missing_filter", message="refusing unfiltered write", table=table)
    return filters


def split_columns(columns: str) -> list[str] | None:
    if not columns or columns.strip() == "*":
        return None
    return [part.strip() for part in columns.split(",") if part.strip()]
