from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from constants import CORS_ALLOW_ORIGINS, LOBBY_ROOM_ID, LOG_FILE, LOG_LEVEL, RELAY_MODE, RELAY_MODE_FLAT, RELAY_MODES
from logging_config import get_logger, setup_logging
from registry import Room, RoomRegistry, room_registry
from routers.rooms import rooms_router
from routers.signaling import signaling_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(
    relay_mode: Optional[str] = None,
    registry: Optional[RoomRegistry] = None,
    cors_allow_origins: Optional[List[str]] = None,
) -> FastAPI:
    relay_mode = relay_mode or RELAY_MODE
    cors_allow_origins = CORS_ALLOW_ORIGINS if cors_allow_origins is None else list(cors_allow_origins)
    if relay_mode not in RELAY_MODES:
        raise ValueError(f"Unknown relay mode {relay_mode!r}, expected one of {', '.join(RELAY_MODES)}")

    app = FastAPI(title="Signaling Relay")

    # Configure CORS, browsers call /create-room from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Flat mode has no rooms to hand out
    if relay_mode != RELAY_MODE_FLAT:
        app.include_router(rooms_router)
    app.include_router(signaling_router)

    app.state.relay_mode = relay_mode
    app.state.cors_allow_origins = cors_allow_origins
    app.state.registry = registry if registry is not None else room_registry
    # Flat mode: one shared room that is never registered, so never deleted
    app.state.lobby = Room(LOBBY_ROOM_ID) if relay_mode == RELAY_MODE_FLAT else None

    logger.info(f"FastAPI application initialized (relay mode: {relay_mode})")
    return app


app = create_app()
