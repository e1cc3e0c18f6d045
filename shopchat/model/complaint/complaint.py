from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ComplaintStatus = Literal["open", "in_progress", "resolved", "closed"]
ComplaintPriority = Literal["low", "medium", "high", "urgent"]


class CustomerContact(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None

    def has_any(self) -> bool:
        return bool(self.email or self.phone)


class ComplaintRecord(BaseModel):
    id: Optional[int] = None
    session_id: str
    conversation_id: int
    summary: Optional[str] = None
    detailed_description: Optional[str] = None
    customer_contact: CustomerContact = Field(default_factory=CustomerContact)
    status: ComplaintStatus = "open"
    priority: ComplaintPriority = "medium"
    tags: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
