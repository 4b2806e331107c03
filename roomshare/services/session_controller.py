# roomshare/services/session_controller.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from roomshare.core.config import settings
from roomshare.core.errors import InvalidInput, NoActiveSession, SessionBusy
from roomshare.models.models import (
    CurrentUser,
    Message,
    Notice,
    Room,
    SessionSnapshot,
    SessionState,
)
from roomshare.services.change_listener import ChangeListener, RoomSubscription, RoomView
from roomshare.services.identity_store import IdentityStore
from roomshare.services.membership import MembershipTracker
from roomshare.services.message_log import MessageLog
from roomshare.services.room_directory import RoomDirectory
from roomshare.services.store import Store
from roomshare.services.timers import Timers

logger = logging.getLogger(__name__)

HEARTBEAT_TIMER = "heartbeat"
TYPING_TIMER = "typing"

Observer = Callable[[Union[SessionSnapshot, Notice]], None]


@dataclass(frozen=True)
class Session:
    """The room and user of one join. A new join always makes a new Session."""

    room: Room
    user: CurrentUser
    generation: int


def _describe(error: Exception) -> str:
    return getattr(error, "message", None) or str(error) or "Unknown error"


# ============================================================================
# SESSION CONTROLLER
# ============================================================================

class SessionController:
    """
    Owns the one active room session and its reconciled view.

    States:
        anonymous -> joining -> active -> leaving -> anonymous

    create_room/join_room establish a session (joining another room while
    active replaces the old session only once the new join succeeded),
    leave_room tears it down, and send_message/delete_message/set_typing
    act on it. Every state change is pushed to observers as a
    SessionSnapshot; user-visible outcomes are pushed as a Notice.

    Async results are applied only while the Session they were issued for
    is still self.session, so a late reply can never touch a newer room.

    Usage:
        controller = SessionController(MemoryStore())
        controller.add_observer(print)
        await controller.create_room("Standup", "alice")
        await controller.send_message("hi")
    """

    def __init__(
        self,
        store: Store,
        identity: Optional[IdentityStore] = None,
        timers: Optional[Timers] = None,
        heartbeat_interval: Optional[float] = None,
        typing_idle: Optional[float] = None,
        directory: Optional[RoomDirectory] = None,
        membership: Optional[MembershipTracker] = None,
        message_log: Optional[MessageLog] = None,
    ) -> None:
        self.store = store
        self.identity = identity or IdentityStore()
        self.timers = timers or Timers()
        self.heartbeat_interval = heartbeat_interval or settings.HEARTBEAT_INTERVAL_SECONDS
        self.typing_idle = typing_idle or settings.TYPING_IDLE_SECONDS
        self.directory = directory or RoomDirectory(store)
        self.membership = membership or MembershipTracker(store)
        self.message_log = message_log or MessageLog(store)
        self.listener = ChangeListener(store, self.membership, self.message_log)

        self.state = SessionState.ANONYMOUS
        self.session: Optional[Session] = None
        self.view = RoomView()
        self._subscription: Optional[RoomSubscription] = None
        self._generation = 0
        self._typing = False
        self._observers: List[Observer] = []

    # ------------------------------------------------------------------
    # observation
    # ------------------------------------------------------------------

    @property
    def room(self) -> Optional[Room]:
        return self.session.room if self.session else None

    @property
    def user(self) -> Optional[CurrentUser]:
        return self.session.user if self.session else None

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """Register for snapshots and notices. Returns a function that unregisters."""
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    def snapshot(self) -> SessionSnapshot:
        user = self.user
        return SessionSnapshot(
            state=self.state,
            room=self.room,
            user=user,
            members=list(self.view.members),
            messages=list(self.view.messages),
            typing=self.view.typing_names(user.id if user else None),
        )

    def _emit(self, item: Union[SessionSnapshot, Notice]) -> None:
        for observer in list(self._observers):
            try:
                observer(item)
            except Exception as e:
                logger.error(f"Observer error: {e}")

    def _publish(self) -> None:
        self._emit(self.snapshot())

    def _notify(self, title: str, description: str = "", level: str = "info") -> None:
        self._emit(Notice(level=level, title=title, description=description))

    def _is_current(self, session: Session) -> bool:
        return self.session is session

    def _require_active(self) -> Session:
        if self.state != SessionState.ACTIVE or self.session is None:
            raise NoActiveSession()
        return self.session

    # ------------------------------------------------------------------
    # create / join
    # ------------------------------------------------------------------

    async def create_room(self, name: str, display_name: str) -> Room:
        display_name = self._begin_joining(display_name)
        try:
            room = await self.directory.create_room(name)
            await self._establish(room, display_name)
        except Exception as e:
            self._abort_joining(e, "Error creating room")
            raise
        self._notify("Room created!", f"Room code: {room.code}")
        return room

    async def join_room(self, code: str, display_name: str) -> Room:
        display_name = self._begin_joining(display_name)
        try:
            room = await self.directory.find_room_by_code(code)
            await self._establish(room, display_name)
        except Exception as e:
            self._abort_joining(e, "Error joining room")
            raise
        self._notify("Joined room!", f"Welcome to {room.name}")
        return room

    def _begin_joining(self, display_name: str) -> str:
        if self.state in (SessionState.JOINING, SessionState.LEAVING):
            self._notify("Please wait", SessionBusy.title, level="error")
            raise SessionBusy()
        display_name = display_name.strip()
        if not display_name:
            self._notify("Error joining room", "A display name is required", level="error")
            raise InvalidInput("A display name is required")
        self.state = SessionState.JOINING
        self._publish()
        return display_name

    def _abort_joining(self, error: Exception, title: str) -> None:
        logger.warning(f"{title}: {error}")
        self.state = SessionState.ACTIVE if self.session else SessionState.ANONYMOUS
        self._notify(title, _describe(error), level="error")
        self._publish()

    async def _establish(self, room: Room, display_name: str) -> None:
        user_id = self.identity.get_or_create_user_id()
        await self.membership.join(room.id, user_id, display_name)

        previous, self.session = self.session, None
        if previous is not None:
            same_member = previous.room.id == room.id and previous.user.id == user_id
            await self._teardown(previous, mark_offline=not same_member)

        self._generation += 1
        session = Session(room, CurrentUser(id=user_id, display_name=display_name), self._generation)
        self.session = session
        self.view.clear()
        try:
            await self._activate(session)
        except Exception:
            self.session = None
            self.view.clear()
            self.identity.clear_session()
            await self.membership.set_online(room.id, user_id, False)
            raise
        if self._is_current(session):
            self.identity.save_session(room, session.user)

    async def _activate(self, session: Session) -> None:
        subscription = await self.listener.subscribe(
            session.room.id, self.view, lambda: self._on_view_update(session)
        )
        if not self._is_current(session):
            await subscription.unsubscribe()
            return
        self._subscription = subscription
        self.timers.repeat(HEARTBEAT_TIMER, self.heartbeat_interval, lambda: self._heartbeat(session))
        self.state = SessionState.ACTIVE
        logger.info(f"✓ Session active: {session.user.display_name} in {session.room.code}")
        self._publish()

    async def restore(self) -> bool:
        """
        Resume the persisted session without re-joining.

        The persisted pair is kept when resuming fails, so a later start
        can try again.
        """
        saved = self.identity.load_session()
        if saved is None or self.state != SessionState.ANONYMOUS:
            return False
        room, user = saved
        self._generation += 1
        session = Session(room, user, self._generation)
        self.session = session
        self.state = SessionState.JOINING
        self._publish()

        await self.membership.set_online(room.id, user.id, True)
        try:
            await self._activate(session)
        except Exception as e:
            logger.warning(f"Could not resume session in room {room.code}: {e}")
            if self._is_current(session):
                self.session = None
                self.view.clear()
                self.state = SessionState.ANONYMOUS
                self._publish()
            return False
        return True

    # ------------------------------------------------------------------
    # leave / exit
    # ------------------------------------------------------------------

    async def leave_room(self) -> None:
        if self.state in (SessionState.JOINING, SessionState.LEAVING):
            raise SessionBusy()
        session = self.session
        if session is None:
            self.identity.clear_session()
            return

        self.state = SessionState.LEAVING
        self._publish()
        self.session = None
        await self._teardown(session, mark_offline=True)
        self.identity.clear_session()
        self.view.clear()
        self.state = SessionState.ANONYMOUS
        logger.info(f"✗ {session.user.display_name} left room {session.room.code}")
        self._publish()

    async def shutdown(self) -> None:
        """
        Presence-on-exit: mark the member offline and release everything.

        The persisted session is kept so the next start resumes it.
        """
        session, self.session = self.session, None
        if session is None:
            return
        try:
            await self._teardown(session, mark_offline=True)
        except Exception as e:
            logger.debug(f"Ignoring error while exiting: {e}")
        self.view.clear()
        self.state = SessionState.ANONYMOUS

    async def _teardown(self, session: Session, mark_offline: bool) -> None:
        self.timers.cancel_all()
        self._typing = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()
        if mark_offline:
            await self.membership.set_online(session.room.id, session.user.id, False)

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> Optional[Message]:
        session = self._require_active()
        try:
            message = await self.message_log.append(
                session.room.id, session.user.id, session.user.display_name, text
            )
        except Exception as e:
            self._notify("Error sending message", _describe(e), level="error")
            raise
        if message is None:
            return None
        if self._is_current(session):
            await self.stop_typing()
        if self._is_current(session) and self.view.add_message(message):
            self._publish()
        return message

    async def delete_message(self, message_id: str) -> None:
        session = self._require_active()
        try:
            await self.message_log.delete(message_id, session.room.id, session.user.id)
        except Exception as e:
            self._notify("Error deleting message", _describe(e), level="error")
            raise
        if self._is_current(session) and self.view.remove_message(message_id):
            self._publish()

    # ------------------------------------------------------------------
    # typing / presence
    # ------------------------------------------------------------------

    async def set_typing(self, typing: bool = True) -> None:
        """
        One keystroke (typing=True) or an explicit stop (typing=False).

        The remote flag goes up on the first keystroke after idle; every
        keystroke replaces the single pending clear timer.
        """
        session = self.session
        if self.state != SessionState.ACTIVE or session is None:
            return
        if not typing:
            await self.stop_typing()
            return
        if not self._typing:
            self._typing = True
            await self.membership.set_typing(session.room.id, session.user.id, True)
            if not self._is_current(session):
                return
        self.timers.schedule(TYPING_TIMER, self.typing_idle, lambda: self._typing_expired(session))

    async def stop_typing(self) -> None:
        self.timers.cancel(TYPING_TIMER)
        session = self.session
        if self._typing and session is not None:
            self._typing = False
            await self.membership.set_typing(session.room.id, session.user.id, False)

    async def _typing_expired(self, session: Session) -> None:
        if not self._is_current(session) or not self._typing:
            return
        self._typing = False
        await self.membership.set_typing(session.room.id, session.user.id, False)

    async def _heartbeat(self, session: Session) -> None:
        if self._is_current(session):
            await self.membership.heartbeat(session.room.id, session.user.id)

    def _on_view_update(self, session: Session) -> None:
        if self._is_current(session):
            self._publish()
