"""Shared fixtures: in-memory store, manual clock, controllers per user."""

from __future__ import annotations

import anyio
import pytest

from roomshare.services.identity_store import IdentityStore
from roomshare.services.memory_store import MemoryStore
from roomshare.services.session_controller import SessionController
from roomshare.services.store import MEMBERS
from roomshare.services.timers import Timers


class ManualHandle:
    def __init__(self, when: float, callback, args) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualClock:
    """Stands in for the event loop's call_later; time moves only on advance_to()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[ManualHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback, *args) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback, args)
        self._handles.append(handle)
        return handle

    def pending(self) -> list[ManualHandle]:
        return [h for h in self._handles if not h.cancelled()]

    def advance_to(self, when: float) -> None:
        while True:
            due = [h for h in self.pending() if h.when <= when]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = when


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def identity_factory(tmp_path):
    def make(name: str) -> IdentityStore:
        return IdentityStore(str(tmp_path / f"{name}.json"))

    return make


@pytest.fixture
def make_controller(store, clock, identity_factory):
    """One controller per simulated browser, sharing the store and the clock."""

    def make(name: str, identity: IdentityStore | None = None) -> SessionController:
        return SessionController(
            store,
            identity=identity or identity_factory(name),
            timers=Timers(clock),
            heartbeat_interval=30,
            typing_idle=1.5,
        )

    return make


@pytest.fixture
def settle():
    """Let feed callbacks and member re-fetches run."""

    async def wait() -> None:
        await anyio.sleep(0.02)

    return wait


@pytest.fixture
def member_row(store):
    def find(display_name: str) -> dict:
        rows = [
            row
            for row in store.tables[MEMBERS].values()
            if row["display_name"] == display_name
        ]
        assert len(rows) == 1
        return rows[0]

    return find
