from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Any, Sequence

import httpx
from supabase import Client, PostgrestAPIError, StorageException, create_client

from .base import BackendError, Filters, Row, require_filters
from .http import sanitize

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True)
class RestConfig:
    url: str
    anon_key: str
    service_key: str


def load_rest_config() -> RestConfig:
    url = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
    if not url:
        raise RuntimeError("SUPABASE_URL is not set")
    anon_key = os.getenv("SUPABASE_ANON_KEY", "").strip()
    if not anon_key:
        raise RuntimeError("SUPABASE_ANON_KEY is not set")
    service_key = os.getenv("SUPABASE_SERVICE_KEY", "").strip() or anon_key
    return RestConfig(url=url, anon_key=anon_key, service_key=service_key)


def connect(config: RestConfig, access_token: str | None = None) -> Client:
    """Supabase client acting for ``access_token``, or with the service key."""
    if access_token is None:
        return create_client(config.url, config.service_key)
    client = create_client(config.url, config.anon_key)
    client.postgrest.auth(access_token)
    return client


def apply_filters(query: Any, filters: Filters | None) -> Any:
    for column, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set)):
            query = query.in_(column, list(value))
        elif value is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, value)
    return query


class RestBackend:
    """Tables and storage buckets of the hosted Supabase project."""

    def __init__(
        self,
        config: RestConfig,
        access_token: str | None = None,
        client: Client | None = None,
    ) -> None:
        self._config = config
        self._access_token = access_token
        self._client = client

    def with_token(self, access_token: str | None) -> "RestBackend":
        return RestBackend(self._config, access_token=access_token)

    @property
    def config(self) -> RestConfig:
        return self._config

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = connect(self._config, self._access_token)
        return self._client

    def _execute(self, table: str, query: Any) -> list[Row]:
        try:
            response = query.execute()
        except PostgrestAPIError as exc:
            logger.warning("query on %s failed: %s", table, exc)
            raise BackendError(
                code="conflict" if exc.code == UNIQUE_VIOLATION else "query_failed",
                message=sanitize(exc.message or str(exc)),
                table=table,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("query on %s could not reach the backend: %s", table, exc)
            raise BackendError(
                code="network_error", message=sanitize(str(exc)), table=table, retryable=True
            ) from exc
        data = response.data
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise BackendError(code="invalid_response", message="expected row list", table=table)
        return data

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        query = apply_filters(self.client.table(table).select(columns), filters)
        if order:
            query = query.order(order, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return self._execute(table, query)

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
        payload = [rows] if isinstance(rows, dict) else list(rows)
        return self._execute(table, self.client.table(table).insert(payload))

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        query = self.client.table(table).update(values)
        return self._execute(table, apply_filters(query, require_filters(table, filters)))

    def delete(self, table: str, filters: Filters) -> list[Row]:
        query = self.client.table(table).delete()
        return self._execute(table, apply_filters(query, require_filters(table, filters)))

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        try:
            self.client.storage.from_(bucket).upload(
                path, data, {"content-type": content_type, "upsert": "true"}
            )
        except (StorageException, httpx.HTTPError) as exc:
            logger.warning("upload to %s/%s failed: %s", bucket, path, exc)
            raise BackendError(
                code="upload_failed",
                message=sanitize(str(exc)),
                table=f"storage:{bucket}",
                retryable=isinstance(exc, httpx.HTTPError),
            ) from exc
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return self.client.storage.from_(bucket).get_public_url(path)
