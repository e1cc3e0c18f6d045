import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from shopchat.client.llm.chatgpt import CompletionClient, CompletionOptions
from shopchat.model.chat.intent import IntentDecision, IntentResult
from shopchat.model.conversation.conversation import Turn
from shopchat.service.errors import CompletionError

logger = logging.getLogger(__name__)

SMALL_TALK_FALLBACK = "Xin chào! Tôi có thể giúp gì cho bạn hôm nay?"

INTENT_SYSTEM_PROMPT = (
    "Bạn là Quỳnh Như, nhân viên chăm sóc khách hàng của một cửa hàng điện thoại. "
    "Phân loại tin nhắn mới nhất của khách hàng thành đúng một intent: "
    "product_query (hỏi về sản phẩm, giá, tồn kho, thông số), "
    "small_talk (chào hỏi, cảm ơn, trò chuyện không liên quan sản phẩm), "
    "complaint (phàn nàn, khiếu nại, báo lỗi sản phẩm hoặc dịch vụ). "
    "Chỉ trả về JSON: "
    "{\"intent\":\"product_query|small_talk|complaint\","
    "\"clarified_query\":\"câu truy vấn tìm kiếm sản phẩm đã làm rõ theo ngữ cảnh hoặc null\","
    "\"direct_response\":\"câu trả lời trực tiếp cho small_talk hoặc null\"}. "
    "Nói tiếng Việt tự nhiên, thân thiện. Chỉ chào ở đầu cuộc trò chuyện."
)

INTENT_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=300, json_mode=True)


def fallback_intent(user_text: str) -> IntentResult:
    return IntentResult(intent="product_query", clarified_query=user_text, direct_response=None, fallback=True)


class IntentClassifier:
    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def classify(self, history: Optional[Sequence[Turn]], user_text: str) -> IntentResult:
        """Label the turn; any failure falls back to a product query on the raw text."""
        task = f"Hãy phân loại tin nhắn mới: {user_text}. Chỉ trả JSON."
        try:
            data = await self.completion.complete_json(INTENT_SYSTEM_PROMPT, history, task, INTENT_OPTIONS)
            decision = IntentDecision.model_validate(data)
        except (CompletionError, ValidationError) as exc:
            logger.warning("intent classification fell back to product_query: %s", exc)
            return fallback_intent(user_text)
        except Exception:
            logger.exception("unexpected intent classification failure")
            return fallback_intent(user_text)

        if decision.intent == "small_talk":
            reply = (decision.direct_response or "").strip()
            return IntentResult(intent="small_talk", direct_response=reply or SMALL_TALK_FALLBACK)
        if decision.intent == "complaint":
            return IntentResult(intent="complaint")

        clarified = (decision.clarified_query or "").strip()
        return IntentResult(intent="product_query", clarified_query=clarified or user_text)
