# roomshare/api/routes/health.py

from fastapi import APIRouter

from roomshare.api.deps import ControllerDep
from roomshare.core.config import settings

router = APIRouter()


@router.get("/health")
async def health(controller: ControllerDep):
    """
    Health check endpoint.

    Returns the session state and the size of the local room view.
    """
    room = controller.room
    return {
        "status": "healthy",
        "store": type(controller.store).__name__,
        "configured_backend": settings.STORE_BACKEND,
        "session_state": controller.state.value,
        "room_code": room.code if room else None,
        "members": len(controller.view.members),
        "messages": len(controller.view.messages),
    }
