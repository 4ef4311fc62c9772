from fastapi import APIRouter, Request, Response

from logging_config import get_logger
from schemas.rooms import CreateRoomResponse

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])

CREATE_ROOM_CORS_HEADERS = {
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def cors_headers(request: Request) -> dict:
    """CORS headers for /create-room, honouring the app's allowed origins.

    The allow-origin header is "*" when every origin is allowed, the request's
    Origin when it is on the list, and left out otherwise.
    """
    headers = dict(CREATE_ROOM_CORS_HEADERS)
    allowed = request.app.state.cors_allow_origins
    origin = request.headers.get("origin")
    if "*" in allowed:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in allowed:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


@rooms_router.options("/create-room")
async def create_room_preflight(request: Request):
    return Response(status_code=200, headers=cors_headers(request))


@rooms_router.post("/create-room", response_model=CreateRoomResponse)
async def create_room(request: Request, response: Response):
    # Response 200: { "roomId": "0f8fad5b-d9cb-469f-a165-70867728950e" }
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")

    room_id = await request.app.state.registry.create_room()

    response.headers.update(cors_headers(request))
    return CreateRoomResponse(roomId=room_id)
