"""Multi-turn complaint intake.

Each complaint turn asks the completion model to extract structured data from
the conversation, then applies it to the session's active complaint:

* no active complaint and the intake is not complete: nothing is stored, the
  customer is only asked for more details;
* no active complaint and the intake is complete: a complaint is created;
* an active complaint exists: description, contact, priority and tags are
  merged into it.

While no complaint exists yet, the extracted data of an incomplete intake is
returned as a draft; the pipeline stores it in the assistant turn metadata
under ``complaintDraft`` and the next complaint turn folds it back in, so
contact details and tags given across several turns end up on the record.

A complaint in ``open`` moves to ``in_progress`` the first time the intake is
complete and at least one contact channel (email or phone) is known.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from shopchat.client.llm.chatgpt import CompletionClient, CompletionOptions
from shopchat.model.complaint.complaint import ComplaintRecord, CustomerContact
from shopchat.model.complaint.extraction import ComplaintData, ComplaintExtraction
from shopchat.model.conversation.conversation import Turn
from shopchat.service.chat.validators import merge_tags
from shopchat.service.errors import CompletionError
from shopchat.service.store.complaint_store import ComplaintStore

logger = logging.getLogger(__name__)

EXTRACTION_FALLBACK = (
    "Em rất xin lỗi về sự bất tiện này. Em đã ghi nhận khiếu nại và sẽ chuyển bộ phận chuyên trách. "
    "Anh/chị có thể cung cấp email hoặc số điện thoại để em liên hệ ạ?"
)
SYSTEM_FALLBACK = (
    "Em rất xin lỗi về sự bất tiện này. Hiện tại hệ thống đang gặp sự cố. "
    "Anh/chị có thể liên hệ hotline để được hỗ trợ trực tiếp không ạ?"
)

COMPLAINT_SYSTEM_PROMPT = (
    "Bạn là Quỳnh Như, chuyên viên xử lý khiếu nại của cửa hàng điện thoại. Chỉ trả về JSON.\n"
    "1. Luôn đồng cảm và xin lỗi vì sự bất tiện.\n"
    "2. Thu thập email hoặc số điện thoại, tự phát hiện nếu khách đã cung cấp trong tin nhắn.\n"
    "3. isComplete = true chỉ khi đã có ít nhất một thông tin liên lạc và đã hiểu vấn đề.\n"
    "4. priority: urgent (lỗi nghiêm trọng), high (lỗi sản phẩm), medium (dịch vụ), low (thắc mắc).\n"
    "Định dạng JSON:\n"
    "{\"responseText\": \"...\", \"isComplete\": true/false, \"complaintData\": {"
    "\"detailedDescription\": \"...\", \"customerContact\": {\"email\": \"...\", \"phone\": \"...\"}, "
    "\"priority\": \"low|medium|high|urgent\", \"tags\": [\"...\"]}}"
)

COMPLAINT_OPTIONS = CompletionOptions(temperature=0.4, max_tokens=500, json_mode=True)


class ComplaintTurnResult(BaseModel):
    response_text: str
    is_complete: bool = False
    priority: str = "medium"
    complaint_id: Optional[int] = None
    status: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    draft: Optional[Dict[str, Any]] = None
    fallback: bool = False


DRAFT_METADATA_KEY = "complaintDraft"


def pending_draft(history: Optional[Sequence[Turn]]) -> Optional[ComplaintData]:
    """Latest intake draft left on an assistant turn, if any."""
    for turn in reversed(list(history or [])):
        if turn.role != "assistant":
            continue
        raw = turn.metadata.get(DRAFT_METADATA_KEY)
        if raw is None:
            if turn.metadata.get("responseType") == "complaint":
                return None
            continue
        try:
            return ComplaintData.model_validate(raw)
        except ValidationError:
            logger.warning("ignoring malformed complaint draft in history")
            return None
    return None


def fold_draft(extraction: ComplaintExtraction, draft: Optional[ComplaintData]) -> ComplaintExtraction:
    if draft is None:
        return extraction
    data = extraction.complaint_data
    merged = data.model_copy(
        update={
            "detailed_description": data.detailed_description or draft.detailed_description,
            "customer_contact": data.customer_contact.model_copy(
                update={
                    "email": data.customer_contact.email or draft.customer_contact.email,
                    "phone": data.customer_contact.phone or draft.customer_contact.phone,
                }
            ),
            "tags": merge_tags(draft.tags, data.tags),
        }
    )
    return extraction.model_copy(update={"complaint_data": merged})


def next_status(current: str, is_complete: bool, contact: CustomerContact) -> str:
    if current == "open" and is_complete and contact.has_any():
        return "in_progress"
    return current


def merge_extraction(existing: ComplaintRecord, extraction: ComplaintExtraction) -> ComplaintRecord:
    data = extraction.complaint_data
    contact = CustomerContact(
        email=data.customer_contact.email or existing.customer_contact.email,
        phone=data.customer_contact.phone or existing.customer_contact.phone,
    )
    return existing.model_copy(
        update={
            "detailed_description": data.detailed_description or existing.detailed_description,
            "customer_contact": contact,
            "priority": data.priority,
            "tags": merge_tags(existing.tags, data.tags),
            "status": next_status(existing.status, extraction.is_complete, contact),
        }
    )


def new_complaint(
    session_id: str,
    conversation_id: int,
    extraction: ComplaintExtraction,
    user_message: str,
) -> ComplaintRecord:
    data = extraction.complaint_data
    contact = CustomerContact(email=data.customer_contact.email, phone=data.customer_contact.phone)
    return ComplaintRecord(
        session_id=session_id,
        conversation_id=conversation_id,
        summary=f"Khiếu nại từ session {session_id}",
        detailed_description=data.detailed_description or user_message[:2000],
        customer_contact=contact,
        status=next_status("open", extraction.is_complete, contact),
        priority=data.priority,
        tags=merge_tags([], data.tags),
    )


class ComplaintAgent:
    def __init__(self, completion: CompletionClient, complaints: ComplaintStore):
        self.completion = completion
        self.complaints = complaints

    async def extract(self, history: Optional[Sequence[Turn]], user_message: str) -> Optional[ComplaintExtraction]:
        """Run the extraction prompt; None when the call or the decode fails."""
        task = f"TIN NHẮN MỚI: {user_message}\nTrả về JSON theo đúng định dạng."
        try:
            data = await self.completion.complete_json(COMPLAINT_SYSTEM_PROMPT, history, task, COMPLAINT_OPTIONS)
            return ComplaintExtraction.model_validate(data)
        except (CompletionError, ValidationError) as exc:
            logger.warning("complaint extraction failed: %s", exc)
            return None
        except Exception:
            logger.exception("unexpected complaint extraction failure")
            return None

    async def process_turn(
        self,
        session_id: str,
        conversation_id: int,
        history: Optional[Sequence[Turn]],
        user_message: str,
    ) -> ComplaintTurnResult:
        try:
            existing = await self.complaints.find_active_for_session(session_id)
        except Exception:
            logger.exception("active complaint lookup failed session=%s", session_id)
            return ComplaintTurnResult(response_text=SYSTEM_FALLBACK, fallback=True)

        extraction = await self.extract(history, user_message)
        if extraction is None:
            return ComplaintTurnResult(
                response_text=EXTRACTION_FALLBACK,
                complaint_id=existing.id if existing else None,
                status=existing.status if existing else None,
                fallback=True,
            )

        if existing is None:
            extraction = fold_draft(extraction, pending_draft(history))

        try:
            if existing is not None:
                saved = await self.complaints.save(merge_extraction(existing, extraction))
            elif extraction.is_complete:
                saved = await self.complaints.create(
                    new_complaint(session_id, conversation_id, extraction, user_message)
                )
            else:
                saved = None
        except Exception:
            logger.exception("complaint persistence failed session=%s", session_id)
            return ComplaintTurnResult(response_text=SYSTEM_FALLBACK, fallback=True)

        logger.info(
            "complaint turn session=%s complete=%s complaint=%s status=%s",
            session_id,
            extraction.is_complete,
            saved.id if saved else None,
            saved.status if saved else None,
        )
        return ComplaintTurnResult(
            response_text=extraction.response_text,
            is_complete=extraction.is_complete,
            priority=extraction.complaint_data.priority,
            complaint_id=saved.id if saved else None,
            status=saved.status if saved else None,
            tags=saved.tags if saved else extraction.complaint_data.tags,
            draft=None if saved else extraction.complaint_data.model_dump(by_alias=True),
        )
