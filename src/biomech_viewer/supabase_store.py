"""Hosted Postgres (Supabase) implementation of the series store."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from supabase import Client, create_client

from .store import StoreError, StoreQuery, TableNames

logger = logging.getLogger(__name__)


class SupabaseStore:
    """Series store backed by Supabase tables, queried with the REST builder."""

    def __init__(self, client: Client, *, tables: TableNames | None = None) -> None:
        self.client = client
        self.tables = tables or TableNames()

    @classmethod
    def connect(cls, url: str, key: str, *, tables: TableNames | None = None) -> SupabaseStore:
        if not url or not key:
            raise ValueError("supabase_url and supabase_key are required for the supabase backend")
        return cls(create_client(url, key), tables=tables)

    def select(self, query: StoreQuery) -> list[dict[str, Any]]:
        builder = (
            self.client.table(query.table)
            .select(",".join(query.columns))
            .eq("session_id", query.session_id)
        )
        if query.level is not None:
            builder = builder.eq("level", query.level)
        if query.metrics is not None:
            builder = builder.in_("metric", list(query.metrics))
        if query.order_by is not None:
            builder = builder.order(query.order_by)
        return self._execute(builder, query.table)

    def fetch_phases(self, session_id: str) -> list[dict[str, Any]]:
        builder = self.client.table(self.tables.phases).select("*").eq("session_id", session_id)
        return self._execute(builder, self.tables.phases)

    def insert_phase(self, record: Mapping[str, Any]) -> None:
        builder = self.client.table(self.tables.phases).insert(dict(record))
        self._execute(builder, self.tables.phases)

    def fetch_metric_meta(self, metrics: Sequence[str]) -> list[dict[str, Any]]:
        if not metrics:
            return []
        builder = self.client.table(self.tables.metrics_meta).select("*").in_("metric", list(metrics))
        return self._execute(builder, self.tables.metrics_meta)

    def _execute(self, builder: Any, table: str) -> list[dict[str, Any]]:
        try:
            response = builder.execute()
        except Exception as exc:
            raise StoreError(f"query on {table!r} failed: {exc}") from exc
        data = getattr(response, "data", None)
        if data is None:
            return []
        if not isinstance(data, list):
            raise StoreError(f"unexpected response payload from {table!r}: {type(data).__name__}")
        logger.debug("Fetched %d rows from %s", len(data), table)
        return data
