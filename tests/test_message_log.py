"""Tests for appending, deleting and loading messages."""

import pytest

from roomshare.core.errors import DeleteFailed, MessageTooLong, TransientBackendError
from roomshare.models.models import MAX_MESSAGE_LENGTH
from roomshare.services.message_log import MessageLog
from roomshare.services.store import MESSAGES

pytestmark = pytest.mark.anyio


class TestAppend:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_text_is_a_no_op(self, store, text: str) -> None:
        log = MessageLog(store)
        assert await log.append("r1", "u1", "alice", text) is None
        assert await log.load_history("r1") == []

    async def test_text_is_trimmed(self, store) -> None:
        message = await MessageLog(store).append("r1", "u1", "alice", "  hi there \n")
        assert message.text == "hi there"

    async def test_too_long_is_rejected(self, store) -> None:
        with pytest.raises(MessageTooLong):
            await MessageLog(store).append("r1", "u1", "alice", "x" * (MAX_MESSAGE_LENGTH + 1))


class TestHistory:
    async def test_history_is_ascending(self, store) -> None:
        log = MessageLog(store)
        for text in ("hi", "yo", "sup"):
            await log.append("r1", "u1", "alice", text)
        await log.append("r2", "u1", "alice", "other room")
        assert [m.text for m in await log.load_history("r1")] == ["hi", "yo", "sup"]

    async def test_history_skips_blank_rows_written_elsewhere(self, store) -> None:
        await store.insert(MESSAGES, {"room_id": "r1", "user_id": "u", "display_name": "a", "text": "  "})
        await MessageLog(store).append("r1", "u1", "alice", "real")
        assert [m.text for m in await MessageLog(store).load_history("r1")] == ["real"]


class TestDelete:
    async def test_author_deletes_own_message(self, store) -> None:
        log = MessageLog(store)
        message = await log.append("r1", "u1", "alice", "oops")
        await log.delete(message.id, "r1", "u1")
        assert await log.load_history("r1") == []

    async def test_other_user_cannot_delete(self, store) -> None:
        log = MessageLog(store)
        message = await log.append("r1", "u1", "alice", "mine")
        with pytest.raises(DeleteFailed):
            await log.delete(message.id, "r1", "u2")
        assert [m.text for m in await log.load_history("r1")] == ["mine"]

    async def test_wrong_room_cannot_delete(self, store) -> None:
        log = MessageLog(store)
        message = await log.append("r1", "u1", "alice", "mine")
        with pytest.raises(DeleteFailed):
            await log.delete(message.id, "r2", "u1")
        assert len(await log.load_history("r1")) == 1

    async def test_backend_error_becomes_delete_failed(self, store, monkeypatch) -> None:
        log = MessageLog(store)
        message = await log.append("r1", "u1", "alice", "mine")

        async def broken(*args, **kwargs):
            raise TransientBackendError("timeout")

        monkeypatch.setattr(store, "delete", broken)
        with pytest.raises(DeleteFailed):
            await log.delete(message.id, "r1", "u1")
