from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ClientInfo(BaseModel):
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", description="UUID of the chat session")
    message: str = Field(..., description="User's message to the assistant")
