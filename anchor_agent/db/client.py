"""Supabase client initialization and helper methods."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog
from supabase import Client, create_client

from anchor_agent.config import get_settings

logger = structlog.get_logger()


class SupabaseClient:
    """Wrapper around the Supabase client with convenience methods."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def _apply_filters(self, query: Any, filters: dict[str, Any] | None) -> Any:
        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)
        return query

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return the created row."""
        result = self._client.table(table).insert(data).execute()
        return result.data[0]

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select records with optional filters, ordering, and limit."""
        query = self._apply_filters(self._client.table(table).select("*"), filters)

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        result = query.execute()
        return result.data

    def select_in(self, table: str, column: str, values: list[Any]) -> list[dict[str, Any]]:
        """Select records whose `column` is one of `values`."""
        if not values:
            return []
        result = self._client.table(table).select("*").in_(column, values).execute()
        return result.data

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID."""
        result = self._client.table(table).update(data).eq("id", id).execute()
        return result.data[0]

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update every record matching all filters and return the updated rows."""
        query = self._apply_filters(self._client.table(table).update(data), filters)
        return query.execute().data

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        """Insert or update on the unique `on_conflict` column and return the row."""
        result = self._client.table(table).upsert(data, on_conflict=on_conflict).execute()
        return result.data[0]

    def delete_where(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        """Delete every record matching all filters and return the deleted rows."""
        query = self._apply_filters(self._client.table(table).delete(), filters)
        return query.execute().data


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance."""
    settings = get_settings()
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("supabase.connected", url=settings.supabase_url)
    return SupabaseClient(client)
