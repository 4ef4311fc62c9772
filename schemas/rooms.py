from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    roomId: str
