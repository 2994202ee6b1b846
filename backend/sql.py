from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import logging
import os
from pathlib import Path
from typing import Any, Callable, Sequence

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import TABLES

from .base import BackendError, Filters, Row, require_filters, split_columns

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class SqlBackend:
    """The hosted table contract served straight from its Postgres database.

    Row-level security is not applied here; ``with_token`` is accepted for
    interface parity and returns the same backend.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage_root: str | Path | None = None,
        public_base_url: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._storage_root = Path(storage_root or os.getenv("STORAGE_DIR", ".state/storage"))
        self._public_base_url = public_base_url or os.getenv("STORAGE_PUBLIC_URL", "")

    def with_token(self, access_token: str | None) -> "SqlBackend":
        return self

    def _model(self, table: str):
        model = TABLES.get(table)
        if model is None:
            raise BackendError(code="unknown_table", message=f"no such table: {table}", table=table)
        return model

    def _column(self, model, table: str, name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise BackendError(code="unknown_column", message=f"no such column: {name}", table=table)
        return column

    def _where(self, stmt, model, table: str, filters: Filters | None):
        for name, value in (filters or {}).items():
            column = self._column(model, table, name)
            if isinstance(value, (list, tuple, set)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        return stmt

    def _to_row(self, obj, columns: list[str] | None = None) -> Row:
        names = columns or [column.key for column in obj.__table__.columns]
        return {name: _jsonable(getattr(obj, name)) for name in names}

    def _check_values(self, model, table: str, values: Row) -> None:
        for name in values:
            self._column(model, table, name)

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        model = self._model(table)
        wanted = split_columns(columns)
        for name in wanted or []:
            self._column(model, table, name)
        stmt = self._where(select(model), model, table, filters)
        if order:
            column = self._column(model, table, order)
            stmt = stmt.order_by(desc(column) if descending else asc(column))
        if limit is not None:
            stmt = stmt.limit(limit)
        session = self._session_factory()
        try:
            rows = session.execute(stmt).scalars().all()
            return [self._to_row(obj, wanted) for obj in rows]
        except SQLAlchemyError as exc:
            logger.warning("select %s failed: %s", table, exc)
            raise BackendError(code="query_failed", message=str(exc)[:300], table=table) from exc
        finally:
            session.close()

    def select_one(self, table: str, columns: str = "*", filters: Filters | None = None) -> Row:
        rows = self.select(table, columns=columns, filters=filters, limit=2)
        if len(rows) != 1:
            raise BackendError(
                code="not_found",
                message=f"expected exactly one row, got {len(rows)}",
                table=table,
            )
        return rows[0]

    def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        model = self._model(table)
        items = [rows] if isinstance(rows, dict) else list(rows)
        session = self._session_factory()
        try:
            created = []
            for values in items:
                self._check_values(model, table, values)
                obj = model(**values)
                session.add(obj)
                created.append(obj)
            session.commit()
            for obj in created:
                session.refresh(obj)
            return [self._to_row(obj) for obj in created]
        except IntegrityError as exc:
            session.rollback()
            logger.warning("insert into %s rejected: %s", table, exc.orig)
            raise BackendError(code="conflict", message=str(exc.orig)[:300], table=table) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("insert into %s failed: %s", table, exc)
            raise BackendError(code="query_failed", message=str(exc)[:300], table=table) from exc
        finally:
            session.close()

    def _matching(self, session: Session, model, table: str, filters: Filters):
        stmt = self._where(select(model), model, table, require_filters(table, filters))
        return session.execute(stmt).scalars().all()

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        model = self._model(table)
        self._check_values(model, table, values)
        session = self._session_factory()
        try:
            matched = self._matching(session, model, table, filters)
            for obj in matched:
                for name, value in values.items():
                    setattr(obj, name, value)
            session.commit()
            for obj in matched:
                session.refresh(obj)
            return [self._to_row(obj) for obj in matched]
        except IntegrityError as exc:
            session.rollback()
            raise BackendError(code="conflict", message=str(exc.orig)[:300], table=table) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("update %s failed: %s", table, exc)
            raise BackendError(code="query_failed", message=str(exc)[:300], table=table) from exc
        finally:
            session.close()

    def delete(self, table: str, filters: Filters) -> list[Row]:
        model = self._model(table)
        session = self._session_factory()
        try:
            matched = self._matching(session, model, table, filters)
            removed = [self._to_row(obj) for obj in matched]
            for obj in matched:
                session.delete(obj)
            session.commit()
            return removed
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("delete from %s failed: %s", table, exc)
            raise BackendError(code="query_failed", message=str(exc)[:300], table=table) from exc
        finally:
            session.close()

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        target = self._storage_root / bucket / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url.rstrip('/')}/{bucket}/{path}"
        return (self._storage_root / bucket / path).resolve().as_uri()
