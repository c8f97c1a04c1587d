"""Supabase access for the audit log backend.

The client is created once from ``supabase_url`` and ``supabase_service_key``.
The service key bypasses RLS, so it never leaves the backend.
"""
import asyncio
from typing import Any, Optional

import structlog
from supabase import create_client, Client

from autoflow.config import get_settings

logger = structlog.get_logger()

_supabase_client: Optional[Client] = None


class SupabaseClient:
    """Async facade over the blocking supabase-py query builder."""

    def __init__(self, client: Client):
        self._client = client

    @property
    def client(self) -> Client:
        return self._client

    async def insert(self, table: str, data: dict[str, Any]) -> dict:
        """Insert one row and return it as stored."""
        try:
            result = await asyncio.to_thread(self._client.table(table).insert(data).execute)
        except Exception as e:
            logger.error("supabase_insert_error", table=table, error=str(e))
            raise
        return result.data[0] if result.data else {}

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict[str, Any]] = None,
        gte: Optional[dict[str, Any]] = None,
        lte: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict]:
        """
        Select rows matching every condition.

        Args:
            table: Table name
            columns: Columns to select
            filters: Equality conditions as {column: value}
            gte: Inclusive lower bounds as {column: value}
            lte: Inclusive upper bounds as {column: value}
            limit: Maximum number of rows
            order_by: Column to order by
            descending: Order from largest to smallest

        Returns:
            Matching rows
        """
        query = self._client.table(table).select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        for column, value in (gte or {}).items():
            query = query.gte(column, value)
        for column, value in (lte or {}).items():
            query = query.lte(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit:
            query = query.limit(limit)

        try:
            result = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("supabase_select_error", table=table, error=str(e))
            raise
        return result.data or []


def get_supabase_client() -> Optional[SupabaseClient]:
    """The shared client, or None when Supabase is not configured or unreachable."""
    global _supabase_client

    if _supabase_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_key:
            logger.warning(
                "supabase_not_configured",
                has_url=bool(settings.supabase_url),
                has_key=bool(settings.supabase_service_key),
            )
            return None
        try:
            _supabase_client = create_client(settings.supabase_url, settings.supabase_service_key)
        except Exception as e:
            logger.error("supabase_client_init_error", error=str(e))
            return None
        logger.info("supabase_client_initialized")

    return SupabaseClient(_supabase_client)
