# roomshare/models/models.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 4000


class Room(BaseModel):
    id: str
    code: str
    name: str
    created_at: datetime


class Member(BaseModel):
    id: str
    room_id: str
    user_id: str
    display_name: str
    joined_at: datetime
    last_seen_at: datetime
    is_online: bool = True
    is_typing: bool = False


class Message(BaseModel):
    id: str
    room_id: str
    user_id: str
    display_name: str
    text: str
    created_at: datetime


class CurrentUser(BaseModel):
    id: str
    display_name: str


class ChangeEvent(BaseModel):
    """One row-level change from a store's notification feed."""

    type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    record: Dict[str, Any] = Field(default_factory=dict)
    old_record: Dict[str, Any] = Field(default_factory=dict)

    @property
    def row_id(self) -> Optional[str]:
        row = self.old_record if self.type == "DELETE" else self.record
        value = row.get("id") or self.record.get("id") or self.old_record.get("id")
        return str(value) if value is not None else None


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    JOINING = "joining"
    ACTIVE = "active"
    LEAVING = "leaving"


class Notice(BaseModel):
    level: Literal["info", "error"] = "info"
    title: str
    description: str = ""


class SessionSnapshot(BaseModel):
    state: SessionState
    room: Optional[Room] = None
    user: Optional[CurrentUser] = None
    members: List[Member] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)
    typing: List[str] = Field(default_factory=list)


class CreateRoomRequest(BaseModel):
    name: str = ""
    display_name: str = Field(min_length=1)


class JoinRoomRequest(BaseModel):
    code: str = Field(min_length=1)
    display_name: str = Field(min_length=1)


class SendMessageRequest(BaseModel):
    text: str


class TypingRequest(BaseModel):
    typing: bool = True
