# roomshare/services/supabase_store.py

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from roomshare.core.errors import ConstraintViolation, TransientBackendError
from roomshare.models.models import ChangeEvent
from roomshare.services.store import ChangeHandler, Row, Store, Subscription

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def translate_error(error: Exception) -> Exception:
    """Map a PostgREST or transport failure onto the store error taxonomy."""
    if isinstance(error, APIError):
        message = error.message or str(error)
        if error.code == UNIQUE_VIOLATION or "duplicate" in message.lower():
            return ConstraintViolation(message, constraint=error.details or "")
        return TransientBackendError(message)
    return TransientBackendError(str(error))


def parse_change_payload(table: str, payload: Dict[str, Any]) -> Optional[ChangeEvent]:
    """
    Decode one Realtime postgres_changes payload.

    The Python client wraps the change in "data" with record/old_record;
    the JS-style shape uses eventType/new/old at the top level. Both are
    accepted.
    """
    data = payload.get("data", payload)
    kind = str(data.get("type") or data.get("eventType") or "").upper()
    if kind not in ("INSERT", "UPDATE", "DELETE"):
        return None
    return ChangeEvent(
        type=kind,
        table=data.get("table") or table,
        record=data.get("record") or data.get("new") or {},
        old_record=data.get("old_record") or data.get("old") or {},
    )


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class SupabaseSubscription(Subscription):
    def __init__(self, client: AsyncClient, channel) -> None:
        self.client = client
        self.channel = channel
        self.closed = False

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.client.remove_channel(self.channel)
        except Exception as e:
            logger.warning(f"Error removing Realtime channel: {e}")


class SupabaseStore(Store):
    """
    Store backed by a hosted Supabase project.

    CRUD goes through PostgREST; the change feed is a Realtime channel per
    (table, room) listening to postgres_changes with a room_id=eq filter.
    Constraints, defaults and cascades are the database's own.
    """

    def __init__(self, url: str, key: str, client: Optional[AsyncClient] = None):
        self.url = url
        self.key = key
        self.client = client

    async def connect(self) -> None:
        if self.client is None:
            if not self.url or not self.key:
                raise TransientBackendError("SUPABASE_URL and SUPABASE_KEY must be set")
            self.client = await acreate_client(self.url, self.key)
        logger.info(f"✓ Connected to Supabase at {self.url or 'injected client'}")

    async def _execute(self, query) -> List[Row]:
        try:
            response = await query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Supabase error: {e}")
            raise translate_error(e) from e
        return list(response.data or [])

    def _match(self, query, match: Mapping[str, Any]):
        for column, value in match.items():
            query = query.eq(column, _filter_value(value))
        return query

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        rows = await self._execute(self.client.table(table).insert(dict(row)))
        if not rows:
            raise TransientBackendError(f"Insert into {table} returned no row")
        return rows[0]

    async def upsert(
        self, table: str, row: Mapping[str, Any], on_conflict: Tuple[str, ...]
    ) -> Row:
        query = self.client.table(table).upsert(dict(row), on_conflict=",".join(on_conflict))
        rows = await self._execute(query)
        if not rows:
            raise TransientBackendError(f"Upsert into {table} returned no row")
        return rows[0]

    async def update(
        self, table: str, values: Mapping[str, Any], match: Mapping[str, Any]
    ) -> List[Row]:
        return await self._execute(self._match(self.client.table(table).update(dict(values)), match))

    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        return await self._execute(self._match(self.client.table(table).delete(), match))

    async def select(
        self,
        table: str,
        match: Mapping[str, Any],
        order_by: Optional[str] = None,
    ) -> List[Row]:
        query = self._match(self.client.table(table).select("*"), match)
        if order_by:
            query = query.order(order_by, desc=False)
        return await self._execute(query)

    async def subscribe(
        self, table: str, room_id: str, handler: ChangeHandler
    ) -> Subscription:
        def on_change(payload: Dict[str, Any]) -> None:
            try:
                event = parse_change_payload(table, payload)
                if event is not None:
                    handler(event)
            except Exception as e:
                logger.error(f"Error processing Realtime event on {table}: {e}")

        channel = self.client.channel(f"{table}:{room_id}:{uuid.uuid4().hex[:8]}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            filter=f"room_id=eq.{room_id}",
            callback=on_change,
        )
        try:
            await channel.subscribe()
        except Exception as e:
            logger.error(f"Realtime subscribe failed for {table}: {e}")
            raise TransientBackendError(str(e)) from e
        logger.info(f"✓ Subscribed to Realtime {table} for room {room_id}")
        return SupabaseSubscription(self.client, channel)
