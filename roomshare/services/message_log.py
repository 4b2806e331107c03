# roomshare/services/message_log.py

from __future__ import annotations

import logging
from typing import List, Optional

from roomshare.core.errors import DeleteFailed, MessageTooLong, RoomShareError
from roomshare.models.models import MAX_MESSAGE_LENGTH, Message
from roomshare.services.store import MESSAGES, Store

logger = logging.getLogger(__name__)


class MessageLog:
    """Append, delete and load the messages of a room."""

    def __init__(self, store: Store) -> None:
        self.store = store

    async def append(
        self, room_id: str, user_id: str, display_name: str, text: str
    ) -> Optional[Message]:
        """Store the trimmed text. Blank text is ignored and returns None."""
        text = text.strip()
        if not text:
            return None
        if len(text) > MAX_MESSAGE_LENGTH:
            raise MessageTooLong(f"Messages are limited to {MAX_MESSAGE_LENGTH} characters")

        row = await self.store.insert(
            MESSAGES,
            {
                "room_id": room_id,
                "user_id": user_id,
                "display_name": display_name,
                "text": text,
            },
        )
        return Message.model_validate(row)

    async def delete(self, message_id: str, room_id: str, user_id: str) -> None:
        """
        Delete a message only if it belongs to room_id and was written by user_id.

        The ownership check is part of the delete predicate itself.
        """
        try:
            deleted = await self.store.delete(
                MESSAGES, {"id": message_id, "room_id": room_id, "user_id": user_id}
            )
        except RoomShareError as e:
            raise DeleteFailed(str(e)) from e
        if not deleted:
            raise DeleteFailed("Only the author can delete a message, in its own room")
        logger.info(f"✓ Deleted message {message_id} in room {room_id}")

    async def load_history(self, room_id: str) -> List[Message]:
        rows = await self.store.select(MESSAGES, {"room_id": room_id}, order_by="created_at")
        return [
            Message.model_validate(row)
            for row in rows
            if str(row.get("text") or "").strip()
        ]
