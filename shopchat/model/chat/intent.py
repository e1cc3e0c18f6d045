from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

Intent = Literal["product_query", "small_talk", "complaint"]


class IntentDecision(BaseModel):
    """Strict decode target for the classifier's JSON output."""

    model_config = ConfigDict(extra="ignore")

    intent: Intent
    clarified_query: Optional[str] = None
    direct_response: Optional[str] = None


class IntentResult(BaseModel):
    intent: Intent
    clarified_query: Optional[str] = None
    direct_response: Optional[str] = None
    fallback: bool = False
