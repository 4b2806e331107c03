# roomshare/api/websocket.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Union

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from roomshare.core.errors import RoomShareError
from roomshare.models.models import (
    CreateRoomRequest,
    JoinRoomRequest,
    Notice,
    SendMessageRequest,
    SessionSnapshot,
    TypingRequest,
)
from roomshare.services.session_controller import SessionController

logger = logging.getLogger(__name__)

router = APIRouter()

Frame = Union[SessionSnapshot, Notice, Dict[str, Any]]


def to_frame(item: Frame) -> Dict[str, Any]:
    if isinstance(item, SessionSnapshot):
        return {"type": "snapshot", **item.model_dump(mode="json")}
    if isinstance(item, Notice):
        return {"type": "notice", **item.model_dump(mode="json")}
    return item


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        item = await queue.get()
        await websocket.send_json(to_frame(item))


def _describe_invalid(error: ValidationError) -> str:
    fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in error.errors())
    return f"Invalid request: {fields}"


async def _dispatch(controller: SessionController, message: Dict[str, Any]) -> bool:
    """Run one client action. Returns False for an unknown action."""
    action = message.get("action")
    if action == "create":
        request = CreateRoomRequest.model_validate(message)
        await controller.create_room(request.name, request.display_name)
    elif action == "join":
        request = JoinRoomRequest.model_validate(message)
        await controller.join_room(request.code, request.display_name)
    elif action == "leave":
        await controller.leave_room()
    elif action == "send":
        request = SendMessageRequest.model_validate(message)
        await controller.send_message(request.text)
    elif action == "delete":
        await controller.delete_message(str(message.get("id", "")))
    elif action == "typing":
        request = TypingRequest.model_validate(message)
        await controller.set_typing(request.typing)
    elif action != "snapshot":
        return False
    return True


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    The session's single update channel.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
        {"action": "create", "name": "Standup", "display_name": "alice"}
        {"action": "join", "code": "K3P9QZ", "display_name": "bob"}
        {"action": "leave"}
        {"action": "send", "text": "hi"}
        {"action": "delete", "id": "<message id>"}
        {"action": "typing", "typing": true}
        {"action": "snapshot"}

    Server -> Client Messages:
    -------------------------
    Snapshot (on connect, after every state change, and on request):
        {"type": "snapshot", "state": "active", "room": {...}, "user": {...},
         "members": [...], "messages": [...], "typing": ["bob"]}

    Notice:
        {"type": "notice", "level": "error", "title": "...", "description": "..."}

    Error:
        {"type": "error", "message": "..."}
    """
    controller: SessionController = websocket.app.state.controller
    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue()
    remove_observer = controller.add_observer(queue.put_nowait)
    sender = asyncio.create_task(_forward(websocket, queue))
    queue.put_nowait(controller.snapshot())
    logger.info("✓ Update channel connected")

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                queue.put_nowait({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                queue.put_nowait({"type": "error", "message": "Expected a JSON object"})
                continue

            logger.debug(f"Websocket input: Action: {message.get('action')}")
            try:
                known = await _dispatch(controller, message)
            except RoomShareError as e:
                queue.put_nowait({"type": "error", "message": e.message})
                continue
            except ValidationError as e:
                queue.put_nowait({"type": "error", "message": _describe_invalid(e)})
                continue
            if not known:
                queue.put_nowait(
                    {"type": "error", "message": f"Unknown action: {message.get('action')}"}
                )
            elif message.get("action") == "snapshot":
                queue.put_nowait(controller.snapshot())

    except WebSocketDisconnect:
        logger.info("✗ Update channel disconnected")
    finally:
        remove_observer()
        sender.cancel()
