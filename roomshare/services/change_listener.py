# roomshare/services/change_listener.py

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from roomshare.core.errors import RoomShareError
from roomshare.models.models import ChangeEvent, Member, Message
from roomshare.services.membership import MembershipTracker
from roomshare.services.message_log import MessageLog
from roomshare.services.store import MEMBERS, MESSAGES, Store, Subscription

logger = logging.getLogger(__name__)


class RoomView:
    """Locally reconciled members and messages of one room."""

    def __init__(self) -> None:
        self.members: List[Member] = []
        self.messages: List[Message] = []

    def add_message(self, message: Message) -> bool:
        if any(existing.id == message.id for existing in self.messages):
            return False
        self.messages.append(message)
        return True

    def remove_message(self, message_id: str) -> bool:
        kept = [message for message in self.messages if message.id != message_id]
        removed = len(kept) != len(self.messages)
        self.messages = kept
        return removed

    def typing_names(self, exclude_user_id: Optional[str]) -> List[str]:
        return [
            member.display_name
            for member in self.members
            if member.is_typing and member.user_id != exclude_user_id
        ]

    def clear(self) -> None:
        self.members = []
        self.messages = []


class RoomSubscription:
    """
    Live feed of one room into a RoomView.

    Snapshot-then-delta: both table feeds are opened first and buffer
    their events while history and members load; the buffer is replayed
    on top of the snapshot before events are applied directly.

    Message inserts append (de-duplicated by id), message deletes remove
    by id, and any member change re-fetches the whole member list.
    """

    def __init__(
        self,
        store: Store,
        membership: MembershipTracker,
        message_log: MessageLog,
        room_id: str,
        view: RoomView,
        on_update: Callable[[], None],
    ) -> None:
        self.store = store
        self.membership = membership
        self.message_log = message_log
        self.room_id = room_id
        self.view = view
        self.on_update = on_update
        self.closed = False
        self._feeds: List[Subscription] = []
        self._buffer: Optional[List[ChangeEvent]] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_again = False

    async def start(self) -> None:
        try:
            self._feeds.append(await self.store.subscribe(MESSAGES, self.room_id, self.handle))
            self._feeds.append(await self.store.subscribe(MEMBERS, self.room_id, self.handle))
            messages = await self.message_log.load_history(self.room_id)
            members = await self.membership.list_active_members(self.room_id)
        except BaseException:
            await self.unsubscribe()
            raise
        if self.closed:
            return

        self.view.messages = messages
        self.view.members = members
        buffered, self._buffer = self._buffer or [], None
        members_changed = False
        for event in buffered:
            if event.table == MESSAGES:
                self._apply_message_event(event)
            else:
                members_changed = True
        logger.info(
            f"✓ Room {self.room_id} loaded: {len(messages)} messages, {len(members)} members, "
            f"{len(buffered)} buffered events"
        )
        self.on_update()
        if members_changed:
            self._refresh_members()

    def handle(self, event: ChangeEvent) -> None:
        """Store feed callback for both tables."""
        if self.closed:
            return
        if self._buffer is not None:
            self._buffer.append(event)
            return
        if event.table == MESSAGES:
            if self._apply_message_event(event):
                self.on_update()
        elif event.table == MEMBERS:
            self._refresh_members()

    def _apply_message_event(self, event: ChangeEvent) -> bool:
        if event.type == "INSERT":
            if event.record.get("room_id") != self.room_id:
                return False
            try:
                message = Message.model_validate(event.record)
            except ValidationError as e:
                logger.error(f"Ignoring malformed message event: {e}")
                return False
            if not message.text.strip():
                return False
            return self.view.add_message(message)
        if event.type == "DELETE":
            # Delete payloads may carry only the primary key
            message_id = event.row_id
            return message_id is not None and self.view.remove_message(message_id)
        return False

    def _refresh_members(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_again = True
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            self._refresh_again = False
            try:
                members = await self.membership.list_active_members(self.room_id)
            except (RoomShareError, ValidationError) as e:
                logger.warning(f"Error reloading members of room {self.room_id}: {e}")
                return
            if self.closed:
                return
            self.view.members = members
            self.on_update()
            if not self._refresh_again:
                return

    async def unsubscribe(self) -> None:
        """Release both feeds and any pending re-fetch. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        feeds, self._feeds = self._feeds, []
        for feed in feeds:
            try:
                await feed.unsubscribe()
            except RoomShareError as e:
                logger.warning(f"Error releasing feed for room {self.room_id}: {e}")
        logger.info(f"✗ Unsubscribed from room {self.room_id}")


class ChangeListener:
    """Opens RoomSubscriptions for the session controller."""

    def __init__(self, store: Store, membership: MembershipTracker, message_log: MessageLog):
        self.store = store
        self.membership = membership
        self.message_log = message_log

    async def subscribe(
        self, room_id: str, view: RoomView, on_update: Callable[[], None]
    ) -> RoomSubscription:
        subscription = RoomSubscription(
            self.store, self.membership, self.message_log, room_id, view, on_update
        )
        await subscription.start()
        return subscription
