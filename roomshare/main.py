# roomshare/main.py

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomshare.api import websocket as websocket_module
from roomshare.api.routes import health, root, session
from roomshare.core.config import settings
from roomshare.core.logging import setup_logging
from roomshare.services.identity_store import IdentityStore
from roomshare.services.session_controller import SessionController
from roomshare.services.store import Store, create_store

# Configure logging first
setup_logging()
logger = logging.getLogger(__name__)


def create_app(store: Optional[Store] = None, identity: Optional[IdentityStore] = None) -> FastAPI:
    """Build the gateway. Tests inject a store and an identity file."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_store = store or create_store()
        await app_store.connect()
        controller = SessionController(app_store, identity=identity)
        app.state.store = app_store
        app.state.controller = controller
        logger.info(f"🚀 Gateway starting - store: {type(app_store).__name__}")

        if await controller.restore():
            logger.info(f"↻ Resumed session in room {controller.room.code}")

        yield

        # Presence-on-exit
        await controller.shutdown()
        await app_store.close()

    app = FastAPI(title="roomshare", lifespan=lifespan)

    # The gateway serves a local UI process
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(session.router)

    # WebSocket routes
    app.include_router(websocket_module.router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("roomshare.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()

# ============================================================================
# END OF FILE
# ============================================================================
