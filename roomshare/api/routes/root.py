# roomshare/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the gateway and its endpoints.
    """
    return {
        "message": "roomshare - real-time text sharing rooms",
        "version": "1.0",
        "features": ["room_codes", "presence", "typing_indicators", "message_delete", "transcript"],
        "endpoints": {
            "websocket": "/ws",
            "session": "/session",
            "messages": "/session/messages",
            "typing": "/session/typing",
            "transcript": "/session/transcript",
            "health": "/health",
        },
    }
