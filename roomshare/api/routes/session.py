# roomshare/api/routes/session.py

from datetime import date

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from roomshare.api.deps import ControllerDep, http_error
from roomshare.core.errors import NoActiveSession, RoomShareError
from roomshare.models.models import (
    CreateRoomRequest,
    JoinRoomRequest,
    Message,
    Room,
    SendMessageRequest,
    SessionSnapshot,
    TypingRequest,
)
from roomshare.services.transcript import render_transcript, transcript_filename

router = APIRouter(prefix="/session", tags=["session"])

# ============================================================================
# SESSION ENDPOINTS
# ============================================================================


@router.get("", response_model=SessionSnapshot)
async def get_session(controller: ControllerDep):
    """Current session state, members, messages and typing set."""
    return controller.snapshot()


@router.post("/rooms", response_model=Room)
async def create_room(request: CreateRoomRequest, controller: ControllerDep):
    """
    Create a room under a fresh code and join it.

    Raises:
        HTTPException: 503 if no free code was found, 409 while another
        room change is in flight
    """
    try:
        return await controller.create_room(request.name, request.display_name)
    except RoomShareError as e:
        raise http_error(e)


@router.post("/join", response_model=Room)
async def join_room(request: JoinRoomRequest, controller: ControllerDep):
    """
    Join a room by code (case-insensitive).

    Raises:
        HTTPException: 404 unknown code, 409 display name taken
    """
    try:
        return await controller.join_room(request.code, request.display_name)
    except RoomShareError as e:
        raise http_error(e)


@router.delete("", response_model=SessionSnapshot)
async def leave_room(controller: ControllerDep):
    """Leave the room and forget the persisted session."""
    try:
        await controller.leave_room()
    except RoomShareError as e:
        raise http_error(e)
    return controller.snapshot()


@router.post("/messages", response_model=Message | None)
async def send_message(request: SendMessageRequest, controller: ControllerDep):
    """Send a message. Blank text is ignored and returns null."""
    try:
        return await controller.send_message(request.text)
    except RoomShareError as e:
        raise http_error(e)


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, controller: ControllerDep):
    """Delete one of your own messages in the current room."""
    try:
        await controller.delete_message(message_id)
    except RoomShareError as e:
        raise http_error(e)
    return {"status": "deleted", "id": message_id}


@router.post("/typing")
async def typing(request: TypingRequest, controller: ControllerDep):
    """A keystroke (typing=true) or an explicit stop (typing=false)."""
    await controller.set_typing(request.typing)
    return {"status": "ok", "typing": request.typing}


@router.get("/transcript", response_class=PlainTextResponse)
async def transcript(controller: ControllerDep):
    """Download the room's messages as a text file."""
    room = controller.room
    if room is None:
        raise http_error(NoActiveSession())
    filename = transcript_filename(room.code, date.today())
    return PlainTextResponse(
        render_transcript(controller.view.messages),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
