# roomshare/services/identity_store.py

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Dict, Optional, Tuple

from pydantic import ValidationError

from roomshare.core.config import settings
from roomshare.models.models import CurrentUser, Room

logger = logging.getLogger(__name__)

USER_ID_KEY = "user_id"
ROOM_KEY = "currentRoom"
USER_KEY = "currentUser"


# ============================================================================
# LOCAL IDENTITY PERSISTENCE
# ============================================================================
class IdentityStore:
    """
    Key -> string store on local disk for the user id and the last session.

    The file is re-read on every access, so whatever was written survives
    a process restart and a second process sees the latest values.

    Storage Format (roomshare_state.json):
        {
            "user_id": "user-9b2f...",
            "currentRoom": "{\"id\": \"...\", \"code\": \"K3P9QZ\", ...}",
            "currentUser": "{\"id\": \"user-9b2f...\", \"display_name\": \"alice\"}"
        }

    Usage:
        identity = IdentityStore()
        user_id = identity.get_or_create_user_id()
        identity.save_session(room, CurrentUser(id=user_id, display_name="alice"))
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or settings.STATE_FILE

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Load error: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, *keys: str) -> None:
        data = self._read()
        if any(key in data for key in keys):
            for key in keys:
                data.pop(key, None)
            self._write(data)

    def get_or_create_user_id(self) -> str:
        """Return the stored user id, creating and persisting one on first use."""
        user_id = self.get(USER_ID_KEY)
        if not user_id:
            user_id = f"user-{uuid.uuid4()}"
            self.set(USER_ID_KEY, user_id)
            logger.info(f"✓ Created user id {user_id}")
        return user_id

    def save_session(self, room: Room, user: CurrentUser) -> None:
        data = self._read()
        data[ROOM_KEY] = room.model_dump_json()
        data[USER_KEY] = user.model_dump_json()
        self._write(data)

    def clear_session(self) -> None:
        self.remove(ROOM_KEY, USER_KEY)

    def load_session(self) -> Optional[Tuple[Room, CurrentUser]]:
        """
        Return the persisted (room, user) pair.

        A missing half or an unreadable value counts as no session.
        """
        data = self._read()
        raw_room, raw_user = data.get(ROOM_KEY), data.get(USER_KEY)
        if not raw_room or not raw_user:
            return None
        try:
            return Room.model_validate_json(raw_room), CurrentUser.model_validate_json(raw_user)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable saved session: {e}")
            return None
