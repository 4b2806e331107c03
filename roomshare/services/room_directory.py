# roomshare/services/room_directory.py

from __future__ import annotations

import logging
import secrets
import string
from typing import Callable, Optional

from roomshare.core.config import settings
from roomshare.core.errors import ConstraintViolation, CreationFailed, NotFound
from roomshare.models.models import Room
from roomshare.services.store import ROOMS, Store

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_room_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: str) -> str:
    return code.strip().upper()


class RoomDirectory:
    """
    Creates rooms under a fresh short code and finds them again by code.

    Code collisions are left to the store's unique constraint: a rejected
    insert regenerates the code and tries again, up to max_attempts.
    """

    def __init__(
        self,
        store: Store,
        max_attempts: Optional[int] = None,
        code_factory: Callable[[], str] = generate_room_code,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts or settings.ROOM_CODE_ATTEMPTS
        self.code_factory = code_factory

    async def create_room(self, name: str = "") -> Room:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            code = normalize_code(self.code_factory())
            try:
                row = await self.store.insert(
                    ROOMS, {"code": code, "name": name.strip() or f"Room {code}"}
                )
            except ConstraintViolation as e:
                logger.warning(f"Room code {code} taken (attempt {attempt}/{self.max_attempts})")
                last_error = e
                continue
            room = Room.model_validate(row)
            logger.info(f"✓ Created room: {room.name} ({room.code})")
            return room

        raise CreationFailed(
            f"Could not find a free room code after {self.max_attempts} attempts"
        ) from last_error

    async def find_room_by_code(self, code: str) -> Room:
        normalized = normalize_code(code)
        rows = await self.store.select(ROOMS, {"code": normalized}) if normalized else []
        if not rows:
            raise NotFound(f"Room {normalized or code!r} not found")
        return Room.model_validate(rows[0])
