"""Decoded shape of the complaint agent's JSON output.

Field names follow the camelCase keys the model is asked to produce.
Contact values that fail validation are nulled instead of rejecting the
whole payload; a missing or blank ``responseText`` or a non-boolean
``isComplete`` does reject it.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from shopchat.service.chat.validators import (
    normalize_email,
    normalize_phone,
    normalize_priority,
    normalize_tags,
)


class ExtractedContact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> Optional[str]:
        return normalize_email(value)

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, value: Any) -> Optional[str]:
        return normalize_phone(value)


class ComplaintData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    detailed_description: Optional[str] = Field(default=None, alias="detailedDescription")
    customer_contact: ExtractedContact = Field(default_factory=ExtractedContact, alias="customerContact")
    priority: str = "medium"
    tags: List[str] = Field(default_factory=list)

    @field_validator("detailed_description", mode="before")
    @classmethod
    def _description(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()[:2000]

    @field_validator("customer_contact", mode="before")
    @classmethod
    def _contact(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> str:
        return normalize_priority(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> List[str]:
        return normalize_tags(value if isinstance(value, list) else None)


class ComplaintExtraction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    response_text: str = Field(alias="responseText", min_length=1)
    is_complete: StrictBool = Field(alias="isComplete")
    complaint_data: ComplaintData = Field(alias="complaintData")

    @field_validator("response_text")
    @classmethod
    def _response_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("responseText must not be blank")
        return value.strip()
