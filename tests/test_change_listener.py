"""Tests for snapshot-then-delta reconciliation of one room."""

import pytest

from roomshare.models.models import ChangeEvent
from roomshare.services.change_listener import ChangeListener, RoomView
from roomshare.services.membership import MembershipTracker
from roomshare.services.message_log import MessageLog
from roomshare.services.store import MEMBERS, MESSAGES

pytestmark = pytest.mark.anyio


@pytest.fixture
def membership(store) -> MembershipTracker:
    return MembershipTracker(store, online_only=True)


@pytest.fixture
def message_log(store) -> MessageLog:
    return MessageLog(store)


@pytest.fixture
def listener(store, membership, message_log) -> ChangeListener:
    return ChangeListener(store, membership, message_log)


class Updates:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


class TestSnapshotThenDelta:
    async def test_snapshot_is_loaded_on_subscribe(
        self, listener, membership, message_log
    ) -> None:
        await membership.join("r1", "u1", "alice")
        await message_log.append("r1", "u1", "alice", "before")
        view, updates = RoomView(), Updates()

        await listener.subscribe("r1", view, updates)

        assert [m.text for m in view.messages] == ["before"]
        assert [m.display_name for m in view.members] == ["alice"]
        assert updates.count == 1

    async def test_inserts_and_deletes_are_applied(
        self, listener, message_log, settle
    ) -> None:
        view = RoomView()
        await listener.subscribe("r1", view, Updates())

        first = await message_log.append("r1", "u1", "alice", "hi")
        await message_log.append("r1", "u2", "bob", "yo")
        await settle()
        assert [m.text for m in view.messages] == ["hi", "yo"]

        await message_log.delete(first.id, "r1", "u1")
        await settle()
        assert [m.text for m in view.messages] == ["yo"]

    async def test_duplicate_insert_is_ignored(self, listener, message_log, settle) -> None:
        view = RoomView()
        subscription = await listener.subscribe("r1", view, Updates())
        message = await message_log.append("r1", "u1", "alice", "once")
        await settle()

        subscription.handle(
            ChangeEvent(type="INSERT", table=MESSAGES, record=message.model_dump(mode="json"))
        )
        assert [m.text for m in view.messages] == ["once"]

    async def test_member_change_refetches_list(
        self, listener, membership, settle
    ) -> None:
        await membership.join("r1", "u1", "alice")
        view = RoomView()
        await listener.subscribe("r1", view, Updates())

        await membership.join("r1", "u2", "bob")
        await settle()
        assert [m.display_name for m in view.members] == ["alice", "bob"]

        await membership.set_typing("r1", "u2", True)
        await settle()
        assert view.typing_names(exclude_user_id="u1") == ["bob"]
        assert view.typing_names(exclude_user_id="u2") == []

        await membership.set_online("r1", "u2", False)
        await settle()
        assert [m.display_name for m in view.members] == ["alice"]

    async def test_malformed_member_row_is_logged_and_recovered(
        self, store, listener, membership, settle, caplog
    ) -> None:
        await membership.join("r1", "u1", "alice")
        view = RoomView()
        await listener.subscribe("r1", view, Updates())

        await store.insert(MEMBERS, {"room_id": "r1", "user_id": "u2"})
        await settle()
        assert "Error reloading members of room r1" in caplog.text
        assert [m.display_name for m in view.members] == ["alice"]

        await store.update(MEMBERS, {"display_name": "bob"}, {"user_id": "u2"})
        await settle()
        assert [m.display_name for m in view.members] == ["alice", "bob"]

    async def test_events_during_snapshot_are_replayed(
        self, store, membership, message_log, settle
    ) -> None:
        view = RoomView()

        class SlowLog(MessageLog):
            async def load_history(self, room_id):
                history = await super().load_history(room_id)
                # A message lands after the history was read
                await message_log.append(room_id, "u2", "bob", "during")
                await settle()
                return history

        await message_log.append("r1", "u1", "alice", "before")
        listener = ChangeListener(store, membership, SlowLog(store))
        await listener.subscribe("r1", view, Updates())

        assert [m.text for m in view.messages] == ["before", "during"]


class TestUnsubscribe:
    async def test_unsubscribe_releases_both_feeds(self, store, listener) -> None:
        subscription = await listener.subscribe("r1", RoomView(), Updates())
        assert store.subscriber_count(MESSAGES, "r1") == 1
        assert store.subscriber_count(MEMBERS, "r1") == 1

        await subscription.unsubscribe()
        await subscription.unsubscribe()
        assert store.subscriber_count(MESSAGES, "r1") == 0
        assert store.subscriber_count(MEMBERS, "r1") == 0

    async def test_late_events_are_ignored(self, listener, message_log, settle) -> None:
        view, updates = RoomView(), Updates()
        subscription = await listener.subscribe("r1", view, updates)
        await subscription.unsubscribe()

        message = await message_log.append("r1", "u1", "alice", "too late")
        subscription.handle(
            ChangeEvent(type="INSERT", table=MESSAGES, record=message.model_dump(mode="json"))
        )
        subscription.handle(ChangeEvent(type="UPDATE", table=MEMBERS, record={"room_id": "r1"}))
        await settle()

        assert view.messages == []
        assert updates.count == 1

    async def test_refetch_result_after_unsubscribe_is_dropped(
        self, store, membership, message_log, settle
    ) -> None:
        view = RoomView()
        listener = ChangeListener(store, membership, message_log)
        subscription = await listener.subscribe("r1", view, Updates())

        await membership.join("r1", "u1", "alice")
        await subscription.unsubscribe()
        await settle()

        assert view.members == []
