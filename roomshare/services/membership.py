# roomshare/services/membership.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from roomshare.core.config import settings
from roomshare.core.errors import ConstraintViolation, NameTaken, RoomShareError
from roomshare.models.models import Member
from roomshare.services.store import MEMBERS, Store, now_iso

logger = logging.getLogger(__name__)

MEMBER_KEY = ("room_id", "user_id")


class MembershipTracker:
    """
    Member rows of a room: joining, presence, typing and listing.

    join() is the only call that raises. The status updates are
    best-effort: a failure is logged and reported as False, never raised.
    """

    def __init__(self, store: Store, online_only: Optional[bool] = None) -> None:
        self.store = store
        self.online_only = settings.MEMBERS_ONLINE_ONLY if online_only is None else online_only

    async def join(self, room_id: str, user_id: str, display_name: str) -> Member:
        """
        Insert or refresh the (room_id, user_id) member row.

        Raises:
            NameTaken: another user in the room already uses display_name
        """
        same_name = await self.store.select(
            MEMBERS, {"room_id": room_id, "display_name": display_name}
        )
        if any(row["user_id"] != user_id for row in same_name):
            raise NameTaken(f"{display_name!r} is already used in this room")

        try:
            row = await self.store.upsert(
                MEMBERS,
                {
                    "room_id": room_id,
                    "user_id": user_id,
                    "display_name": display_name,
                    "is_online": True,
                    "is_typing": False,
                    "last_seen_at": now_iso(),
                },
                on_conflict=MEMBER_KEY,
            )
        except ConstraintViolation as e:
            raise NameTaken(f"{display_name!r} is already used in this room") from e

        logger.info(f"→ {display_name} ({user_id}) joined room {room_id}")
        return Member.model_validate(row)

    async def _update(self, room_id: str, user_id: str, values: Dict[str, Any], what: str) -> bool:
        try:
            await self.store.update(MEMBERS, values, {"room_id": room_id, "user_id": user_id})
        except RoomShareError as e:
            logger.warning(f"Error {what} for {user_id} in room {room_id}: {e}")
            return False
        return True

    async def set_online(self, room_id: str, user_id: str, online: bool) -> bool:
        values: Dict[str, Any] = {"is_online": online, "last_seen_at": now_iso()}
        if not online:
            values["is_typing"] = False
        return await self._update(room_id, user_id, values, "updating presence")

    async def set_typing(self, room_id: str, user_id: str, typing: bool) -> bool:
        return await self._update(room_id, user_id, {"is_typing": typing}, "updating typing")

    async def heartbeat(self, room_id: str, user_id: str) -> bool:
        return await self._update(
            room_id,
            user_id,
            {"is_online": True, "last_seen_at": now_iso()},
            "sending heartbeat",
        )

    async def list_active_members(self, room_id: str) -> List[Member]:
        match: Dict[str, Any] = {"room_id": room_id}
        if self.online_only:
            match["is_online"] = True
        rows = await self.store.select(MEMBERS, match, order_by="joined_at")
        return [Member.model_validate(row) for row in rows]
