from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ResponseType = Literal["small_talk", "complaint", "product_query"]
ErrorType = Literal[
    "VALIDATION_ERROR",
    "INVALID_SESSION",
    "EMPTY_MESSAGE",
    "MESSAGE_TOO_LONG",
    "INVALID_ROOM",
    "TOO_MANY_MESSAGES",
    "PROCESSING_ERROR",
    "GENERATION_ERROR",
]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class MessageProcessingEvent(_Event):
    session_id: str = Field(..., alias="sessionId")
    status: Literal["started", "completed"]
    processing_time: Optional[int] = Field(default=None, alias="processingTime")
    timestamp: str = Field(default_factory=iso_now)


class AiResponseEvent(_Event):
    session_id: str = Field(..., alias="sessionId")
    message: str
    timestamp: str = Field(default_factory=iso_now)
    metadata: Optional[Dict[str, Any]] = None


class ErrorEvent(_Event):
    type: ErrorType
    message: str
    timestamp: str = Field(default_factory=iso_now)
    details: Optional[str] = None
