import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

# "rooms": clients join /ws?room=<id> created via /create-room
# "flat": every client shares a single lobby, no room ids
RELAY_MODE_ROOMS = "rooms"
RELAY_MODE_FLAT = "flat"
RELAY_MODES = (RELAY_MODE_ROOMS, RELAY_MODE_FLAT)
RELAY_MODE = os.getenv("RELAY_MODE", RELAY_MODE_ROOMS)

CORS_ALLOW_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()]

LOBBY_ROOM_ID = "lobby"
