from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Turn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime
    intent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ConversationRecord(BaseModel):
    id: int
    session_id: str
    status: str = "active"
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    turns: List[Turn] = Field(default_factory=list)
