# roomshare/api/deps.py

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from roomshare.core.errors import RoomShareError
from roomshare.services.session_controller import SessionController


def get_controller(request: Request) -> SessionController:
    """Dependency provider for the process's SessionController."""
    return request.app.state.controller


ControllerDep = Annotated[SessionController, Depends(get_controller)]


def http_error(error: RoomShareError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
