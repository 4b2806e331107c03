# roomshare/services/redis_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Iterator, List, Mapping, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from roomshare.core.config import settings
from roomshare.core.errors import ConstraintViolation, TransientBackendError
from roomshare.models.models import ChangeEvent
from roomshare.services.store import (
    ROOMS,
    SCHEMA,
    ChangeHandler,
    Row,
    Store,
    Subscription,
    matches,
    sort_rows,
    unique_key,
    with_defaults,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "roomshare"


def table_key(table: str) -> str:
    return f"{KEY_PREFIX}:{table}"


def index_key(table: str, columns: Tuple[str, ...]) -> str:
    return f"{KEY_PREFIX}:{table}:unique:{','.join(columns)}"


def channel_name(room_id: str, table: str) -> str:
    return f"room:{room_id}:{table}"


class RedisSubscription(Subscription):
    def __init__(self, pubsub, task: asyncio.Task) -> None:
        self.pubsub = pubsub
        self.task = task
        self.closed = False

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task
        try:
            await self.pubsub.unsubscribe()
            await self.pubsub.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis subscription: {e}")


class RedisStore(Store):
    """
    Self-hosted store on Redis.

    Every table is one hash of row_id -> JSON row. Unique constraints are
    index hashes claimed with HSETNX, and every write publishes a
    ChangeEvent on the room's channel for that table:

        roomshare:rooms                               id -> row
        roomshare:rooms:unique:code                   code -> id
        roomshare:room_members:unique:room_id,user_id room|user -> id
        room:{room_id}:messages                       change events

    Reads scan the whole table hash, which is fine at chat-room scale.
    """

    def __init__(self, host: str = "localhost", port: int = 6379, client=None):
        self.host = host
        self.port = port
        self.client = client
        self.access_key = settings.REDIS_ACCESS_KEY

    async def connect(self) -> None:
        """Establish async connection to Redis."""
        if self.client is None:
            scheme = "rediss" if settings.REDIS_SSL else "redis"
            self.client = redis.from_url(
                f"{scheme}://:{self.access_key}@{self.host}:{self.port}",
                decode_responses=True,
            )
        with self._errors():
            await self.client.ping()
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        logger.info("Redis connection closed")

    @contextlib.contextmanager
    def _errors(self) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            logger.error(f"Redis error: {e}")
            raise TransientBackendError(str(e)) from e

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        new_row = with_defaults(table, row)
        with self._errors():
            claimed: List[Tuple[str, str]] = []
            for columns in SCHEMA[table].unique:
                index, key = index_key(table, columns), unique_key(new_row, columns)
                if not await self.client.hsetnx(index, key, new_row["id"]):
                    for claimed_index, claimed_key in claimed:
                        await self.client.hdel(claimed_index, claimed_key)
                    constraint = f"{table}_{'_'.join(columns)}_key"
                    raise ConstraintViolation(
                        f"duplicate key value violates unique constraint \"{constraint}\"",
                        constraint=constraint,
                    )
                claimed.append((index, key))
            await self.client.hset(table_key(table), new_row["id"], json.dumps(new_row))
            await self._publish(ChangeEvent(type="INSERT", table=table, record=new_row))
        return new_row

    async def upsert(
        self, table: str, row: Mapping[str, Any], on_conflict: Tuple[str, ...]
    ) -> Row:
        with self._errors():
            existing_id = await self.client.hget(
                index_key(table, on_conflict), unique_key(row, on_conflict)
            )
            existing = await self._get(table, existing_id) if existing_id else None
            if existing is None:
                try:
                    return await self.insert(table, row)
                except ConstraintViolation:
                    # Lost a race with a concurrent insert of the same key
                    existing_id = await self.client.hget(
                        index_key(table, on_conflict), unique_key(row, on_conflict)
                    )
                    existing = await self._get(table, existing_id) if existing_id else None
                    if existing is None:
                        raise
            return await self._write(table, existing, row)

    async def update(
        self, table: str, values: Mapping[str, Any], match: Mapping[str, Any]
    ) -> List[Row]:
        rows = await self.select(table, match)
        with self._errors():
            return [await self._write(table, row, values) for row in rows]

    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        rows = await self.select(table, match)
        with self._errors():
            for row in rows:
                await self.client.hdel(table_key(table), row["id"])
                for columns in SCHEMA[table].unique:
                    await self.client.hdel(index_key(table, columns), unique_key(row, columns))
                await self._publish(ChangeEvent(type="DELETE", table=table, old_record=row))
        if table == ROOMS:
            for row in rows:
                for child, schema in SCHEMA.items():
                    if schema.cascade_from_room:
                        await self.delete(child, {"room_id": row["id"]})
        return rows

    async def _write(self, table: str, existing: Row, values: Mapping[str, Any]) -> Row:
        updated = {**existing, **values, "id": existing["id"]}
        await self.client.hset(table_key(table), existing["id"], json.dumps(updated))
        await self._publish(
            ChangeEvent(type="UPDATE", table=table, record=updated, old_record=existing)
        )
        return updated

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def _get(self, table: str, row_id: str) -> Optional[Row]:
        raw = await self.client.hget(table_key(table), row_id)
        return json.loads(raw) if raw else None

    async def select(
        self,
        table: str,
        match: Mapping[str, Any],
        order_by: Optional[str] = None,
    ) -> List[Row]:
        with self._errors():
            raw_rows = await self.client.hvals(table_key(table))
        rows = [row for row in map(json.loads, raw_rows) if matches(row, match)]
        return sort_rows(rows, order_by)

    # ------------------------------------------------------------------
    # change feed
    # ------------------------------------------------------------------

    async def _publish(self, event: ChangeEvent) -> None:
        row = event.old_record if event.type == "DELETE" else event.record
        room_id = row.get("room_id")
        if room_id is None:
            return
        channel = channel_name(room_id, event.table)
        await self.client.publish(channel, event.model_dump_json())
        logger.debug(f"📤 Published {event.type} to Redis channel '{channel}'")

    async def subscribe(
        self, table: str, room_id: str, handler: ChangeHandler
    ) -> Subscription:
        channel = channel_name(room_id, table)
        with self._errors():
            pubsub = self.client.pubsub()
            await pubsub.subscribe(channel)
        logger.info(f"✓ Subscribed to Redis channel '{channel}'")
        task = asyncio.create_task(self._listen(pubsub, handler))
        return RedisSubscription(pubsub, task)

    async def _listen(self, pubsub, handler: ChangeHandler) -> None:
        """Decode change events from one channel and hand them to the handler."""
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                event = ChangeEvent.model_validate_json(message["data"])
                handler(event)
            except Exception as e:
                logger.error(f"Error processing Redis change event: {e}")
