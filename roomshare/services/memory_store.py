# roomshare/services/memory_store.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from roomshare.core.errors import ConstraintViolation
from roomshare.models.models import ChangeEvent
from roomshare.services.store import (
    ROOMS,
    SCHEMA,
    CallbackSubscription,
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


class MemoryStore(Store):
    """
    Single-process store kept in dictionaries.

    Mirrors the hosted tables closely enough for local runs and tests:
    unique constraints, cascading room deletes, and a change feed whose
    events are delivered on the next loop iteration after the write.

    Storage Format:
        tables: table -> {row_id: row}
        handlers: (table, room_id) -> [handler, ...]
    """

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Row]] = {name: {} for name in SCHEMA}
        self.handlers: Dict[Tuple[str, str], List[ChangeHandler]] = {}

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        new_row = with_defaults(table, row)
        self._check_unique(table, new_row)
        self.tables[table][new_row["id"]] = new_row
        self._emit(ChangeEvent(type="INSERT", table=table, record=dict(new_row)))
        return dict(new_row)

    async def upsert(
        self, table: str, row: Mapping[str, Any], on_conflict: Tuple[str, ...]
    ) -> Row:
        key = unique_key(row, on_conflict)
        for existing in self.tables[table].values():
            if unique_key(existing, on_conflict) == key:
                old = dict(existing)
                candidate = {**existing, **row, "id": existing["id"]}
                self._check_unique(table, candidate, ignore_id=existing["id"])
                existing.update(candidate)
                self._emit(
                    ChangeEvent(type="UPDATE", table=table, record=dict(existing), old_record=old)
                )
                return dict(existing)
        return await self.insert(table, row)

    async def update(
        self, table: str, values: Mapping[str, Any], match: Mapping[str, Any]
    ) -> List[Row]:
        updated: List[Row] = []
        for existing in self.tables[table].values():
            if not matches(existing, match):
                continue
            old = dict(existing)
            existing.update(values)
            updated.append(dict(existing))
            self._emit(
                ChangeEvent(type="UPDATE", table=table, record=dict(existing), old_record=old)
            )
        return updated

    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        doomed = [row for row in self.tables[table].values() if matches(row, match)]
        for row in doomed:
            del self.tables[table][row["id"]]
            self._emit(ChangeEvent(type="DELETE", table=table, old_record=dict(row)))
            if table == ROOMS:
                for child, schema in SCHEMA.items():
                    if schema.cascade_from_room:
                        await self.delete(child, {"room_id": row["id"]})
        return [dict(row) for row in doomed]

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        match: Mapping[str, Any],
        order_by: Optional[str] = None,
    ) -> List[Row]:
        rows = [dict(row) for row in self.tables[table].values() if matches(row, match)]
        return sort_rows(rows, order_by)

    # ------------------------------------------------------------------
    # change feed
    # ------------------------------------------------------------------

    async def subscribe(
        self, table: str, room_id: str, handler: ChangeHandler
    ) -> Subscription:
        key = (table, room_id)
        self.handlers.setdefault(key, []).append(handler)
        logger.debug("Subscribed to %s for room %s", table, room_id)

        def release() -> None:
            handlers = self.handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self.handlers.pop(key, None)

        return CallbackSubscription(release)

    def subscriber_count(self, table: str, room_id: str) -> int:
        return len(self.handlers.get((table, room_id), []))

    def _emit(self, event: ChangeEvent) -> None:
        row = event.old_record if event.type == "DELETE" else event.record
        room_id = row.get("room_id")
        if room_id is None:
            return
        handlers = list(self.handlers.get((event.table, room_id), []))
        if not handlers:
            return
        loop = asyncio.get_running_loop()
        for handler in handlers:
            loop.call_soon(handler, event)

    def _check_unique(self, table: str, row: Row, ignore_id: Optional[str] = None) -> None:
        for columns in SCHEMA[table].unique:
            key = unique_key(row, columns)
            for existing in self.tables[table].values():
                if existing["id"] == ignore_id:
                    continue
                if unique_key(existing, columns) == key:
                    constraint = f"{table}_{'_'.join(columns)}_key"
                    raise ConstraintViolation(
                        f"duplicate key value violates unique constraint \"{constraint}\"",
                        constraint=constraint,
                    )
