from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class MessageType(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice_candidate"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, value) -> "MessageType":
        """Map a raw `type` value onto the enum; anything unknown is UNRECOGNIZED."""
        for member in RELAYED_TYPES:
            if value == member.value:
                return member
        return cls.UNRECOGNIZED


RELAYED_TYPES = (MessageType.OFFER, MessageType.ANSWER, MessageType.ICE_CANDIDATE)


class SignalingMessage(BaseModel):
    """Envelope of one signaling message. `sdp` and `candidate` are never inspected."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    sdp: Optional[str] = None
    candidate: Optional[Any] = None
    # Room identity travels in the /ws query string, kept for older clients only
    room: Optional[str] = None

    @property
    def message_type(self) -> MessageType:
        return MessageType.parse(self.type)

    @classmethod
    def decode(cls, raw: str) -> "SignalingMessage":
        """Parse one JSON frame. Raises pydantic.ValidationError on malformed input."""
        return cls.model_validate_json(raw)
