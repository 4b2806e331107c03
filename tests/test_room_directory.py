"""Tests for room creation and lookup by code."""

import re

import pytest

from roomshare.core.errors import CreationFailed, NotFound
from roomshare.services.room_directory import RoomDirectory
from roomshare.services.store import ROOMS

pytestmark = pytest.mark.anyio

MAX_ATTEMPTS = 5


class CountingCodes:
    def __init__(self, *codes: str) -> None:
        self.codes = list(codes)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return self.codes[min(self.calls, len(self.codes)) - 1]


class TestCreateRoom:
    async def test_code_is_six_uppercase_alphanumerics(self, store) -> None:
        room = await RoomDirectory(store).create_room("Standup")
        assert re.fullmatch(r"[A-Z0-9]{6}", room.code)
        assert room.name == "Standup"

    async def test_blank_name_defaults_to_code(self, store) -> None:
        room = await RoomDirectory(store).create_room("   ")
        assert room.name == f"Room {room.code}"

    async def test_collision_regenerates_code(self, store) -> None:
        await store.insert(ROOMS, {"code": "TAKEN1", "name": "x"})
        codes = CountingCodes("TAKEN1", "TAKEN1", "FREE01")
        room = await RoomDirectory(store, code_factory=codes).create_room("y")
        assert room.code == "FREE01"
        assert codes.calls == 3

    async def test_gives_up_after_five_attempts(self, store) -> None:
        await store.insert(ROOMS, {"code": "TAKEN1", "name": "x"})
        codes = CountingCodes("TAKEN1")
        with pytest.raises(CreationFailed):
            await RoomDirectory(store, max_attempts=MAX_ATTEMPTS, code_factory=codes).create_room("y")
        assert codes.calls == MAX_ATTEMPTS
        assert len(await store.select(ROOMS, {})) == 1

    async def test_codes_are_never_shared(self, store) -> None:
        directory = RoomDirectory(store, code_factory=CountingCodes("AAAAAA", "BBBBBB", "CCCCCC"))
        first = await directory.create_room("one")
        directory.code_factory = CountingCodes("AAAAAA", "BBBBBB", "CCCCCC")
        second = await directory.create_room("two")
        assert first.code != second.code


class TestFindRoom:
    async def test_lookup_is_case_insensitive(self, store) -> None:
        directory = RoomDirectory(store)
        room = await directory.create_room("Standup")
        found = await directory.find_room_by_code(f"  {room.code.lower()} ")
        assert found.id == room.id

    async def test_unknown_code(self, store) -> None:
        with pytest.raises(NotFound):
            await RoomDirectory(store).find_room_by_code("NOPE00")

    async def test_blank_code(self, store) -> None:
        with pytest.raises(NotFound):
            await RoomDirectory(store).find_room_by_code("  ")
