# roomshare/services/store.py

from __future__ import annotations

import abc
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from roomshare.models.models import ChangeEvent

Row = Dict[str, Any]
ChangeHandler = Callable[[ChangeEvent], None]

ROOMS = "rooms"
MEMBERS = "room_members"
MESSAGES = "messages"


# ============================================================================
# TABLE SCHEMA
# ============================================================================

@dataclass(frozen=True)
class TableSchema:
    """
    Column defaults and constraints of one backend table.

    The hosted database enforces these itself; the in-memory and Redis
    stores read them to emulate the same contract.
    """

    name: str
    unique: Tuple[Tuple[str, ...], ...] = ()
    timestamps: Tuple[str, ...] = ()
    cascade_from_room: bool = False


SCHEMA: Dict[str, TableSchema] = {
    ROOMS: TableSchema(ROOMS, unique=(("code",),), timestamps=("created_at",)),
    MEMBERS: TableSchema(
        MEMBERS,
        unique=(("room_id", "user_id"),),
        timestamps=("joined_at", "last_seen_at"),
        cascade_from_room=True,
    ),
    MESSAGES: TableSchema(MESSAGES, timestamps=("created_at",), cascade_from_room=True),
}

_last_issued: Optional[datetime] = None


def now_iso() -> str:
    """
    UTC timestamp in ISO format, strictly increasing within this process.

    Rows written in the same microsecond would otherwise tie when ordered.
    """
    global _last_issued
    now = datetime.now(timezone.utc)
    if _last_issued is not None and now <= _last_issued:
        now = _last_issued + timedelta(microseconds=1)
    _last_issued = now
    return now.isoformat(timespec="microseconds")


def with_defaults(table: str, row: Mapping[str, Any]) -> Row:
    """Fill id and timestamp columns the way the database defaults would."""
    result = dict(row)
    result.setdefault("id", str(uuid.uuid4()))
    for column in SCHEMA[table].timestamps:
        result.setdefault(column, now_iso())
    if table == MEMBERS:
        result.setdefault("is_online", True)
        result.setdefault("is_typing", False)
    return result


def matches(row: Mapping[str, Any], match: Mapping[str, Any]) -> bool:
    return all(row.get(column) == value for column, value in match.items())


def sort_rows(rows: List[Row], order_by: Optional[str]) -> List[Row]:
    if order_by:
        rows.sort(key=lambda row: str(row.get(order_by) or ""))
    return rows


def unique_key(row: Mapping[str, Any], columns: Sequence[str]) -> str:
    return "|".join(str(row.get(column)) for column in columns)


# ============================================================================
# STORE CONTRACT
# ============================================================================

class Subscription(abc.ABC):
    """Handle for one room-scoped change feed."""

    @abc.abstractmethod
    async def unsubscribe(self) -> None:
        """Release the feed. Safe to call more than once."""


class Store(abc.ABC):
    """
    Table store with a row-level change feed.

    Implementations raise ConstraintViolation when a unique constraint
    rejects a write and TransientBackendError for any other failure.
    Rows are plain dicts keyed by column name.
    """

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abc.abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        ...

    @abc.abstractmethod
    async def upsert(
        self, table: str, row: Mapping[str, Any], on_conflict: Tuple[str, ...]
    ) -> Row:
        ...

    @abc.abstractmethod
    async def update(
        self, table: str, values: Mapping[str, Any], match: Mapping[str, Any]
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def delete(self, table: str, match: Mapping[str, Any]) -> List[Row]:
        ...

    @abc.abstractmethod
    async def select(
        self,
        table: str,
        match: Mapping[str, Any],
        order_by: Optional[str] = None,
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def subscribe(
        self, table: str, room_id: str, handler: ChangeHandler
    ) -> Subscription:
        ...


@dataclass
class CallbackSubscription(Subscription):
    """Subscription whose release is a plain callback."""

    release: Callable[[], None]
    closed: bool = field(default=False)

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.release()


def create_store(backend: Optional[str] = None) -> Store:
    """Build the store named by STORE_BACKEND (or the given backend name)."""
    from roomshare.core.config import settings

    backend = backend or settings.STORE_BACKEND
    if backend == "supabase":
        from roomshare.services.supabase_store import SupabaseStore

        return SupabaseStore(settings.SUPABASE_URL, settings.SUPABASE_KEY)
    if backend == "redis":
        from roomshare.services.redis_store import RedisStore

        return RedisStore(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    if backend == "memory":
        from roomshare.services.memory_store import MemoryStore

        return MemoryStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")
