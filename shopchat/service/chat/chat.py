import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, Field

import shopchat.config.config as configs
from shopchat.model.chat.chat_request import ClientInfo, SendMessageRequest
from shopchat.model.chat.chat_response import AiResponseEvent, ErrorEvent, MessageProcessingEvent
from shopchat.model.chat.intent import IntentResult
from shopchat.service.chat.complaint_agent import DRAFT_METADATA_KEY, ComplaintAgent
from shopchat.service.chat.generator import ResponseGenerator
from shopchat.service.chat.intent import IntentClassifier
from shopchat.service.chat.retrieval import ProductRetriever
from shopchat.service.chat.validators import is_valid_session_id
from shopchat.service.errors import ChatValidationError
from shopchat.service.socket.channel import BaseChannel
from shopchat.service.store.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

PROCESSING_ERROR_MESSAGE = "Lỗi khi xử lý tin nhắn. Vui lòng thử lại sau."
GENERATION_ERROR_MESSAGE = "Không thể tạo phản hồi. Vui lòng thử lại."


class TurnOutcome(BaseModel):
    session_id: str
    response_type: str
    reply: Optional[str] = None
    processing_time: int = 0
    retrieved_products: list[Dict[str, Any]] = Field(default_factory=list)
    complaint_id: Optional[int] = None
    is_complete: Optional[bool] = None
    failed: bool = False


class _Reply(BaseModel):
    text: str
    response_type: str
    event_metadata: Dict[str, Any] = Field(default_factory=dict)
    turn_metadata: Dict[str, Any] = Field(default_factory=dict)
    retrieved_products: list[Dict[str, Any]] = Field(default_factory=list)
    complaint_id: Optional[int] = None
    is_complete: Optional[bool] = None


def validate_send_message(data: Any) -> SendMessageRequest:
    """Check an inbound ``sendMessage`` payload; raises ChatValidationError."""
    if not isinstance(data, dict):
        raise ChatValidationError("VALIDATION_ERROR", "Dữ liệu không hợp lệ. Cần sessionId và message.")
    session_id = data.get("sessionId")
    message = data.get("message")
    if not isinstance(session_id, str) or not session_id or not isinstance(message, str) or not message:
        raise ChatValidationError("VALIDATION_ERROR", "Dữ liệu không hợp lệ. Cần sessionId và message.")
    if not is_valid_session_id(session_id):
        raise ChatValidationError("INVALID_SESSION", "Session ID không hợp lệ.")
    if not message.strip():
        raise ChatValidationError("EMPTY_MESSAGE", "Tin nhắn không thể để trống.")
    if len(message) > configs.MAX_MESSAGE_LENGTH:
        raise ChatValidationError(
            "MESSAGE_TOO_LONG",
            f"Tin nhắn quá dài (tối đa {configs.MAX_MESSAGE_LENGTH} ký tự).",
        )
    return SendMessageRequest(session_id=session_id, message=message)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class PipelineOrchestrator:
    """Per-turn control flow: session, intent, branch, reply, persistence."""

    def __init__(
        self,
        conversations: ConversationStore,
        classifier: IntentClassifier,
        retriever: ProductRetriever,
        generator: ResponseGenerator,
        complaint_agent: ComplaintAgent,
        model_name: Optional[str] = None,
    ):
        self.conversations = conversations
        self.classifier = classifier
        self.retriever = retriever
        self.generator = generator
        self.complaint_agent = complaint_agent
        self.model_name = model_name or configs.MODEL
        self._background: Set[asyncio.Task] = set()
        # latest assistant-turn write per session; the next turn waits on it
        self._pending_writes: Dict[str, asyncio.Task] = {}

    async def handle_send_message(
        self,
        channel: BaseChannel,
        data: Any,
        client: Optional[ClientInfo] = None,
    ) -> Optional[TurnOutcome]:
        """Transport entry point; every failure ends up as an ``error`` event."""
        try:
            request = validate_send_message(data)
        except ChatValidationError as exc:
            logger.info("rejected sendMessage from channel=%s: %s", channel.id, exc)
            await channel.emit("error", ErrorEvent(type=exc.type, message=exc.message).payload())
            return None

        try:
            return await self.process_message(channel, request, client)
        except Exception as exc:
            logger.exception("turn failed session=%s", request.session_id)
            await channel.emit(
                "error",
                ErrorEvent(
                    type="PROCESSING_ERROR",
                    message=PROCESSING_ERROR_MESSAGE,
                    details=str(exc) if configs.is_development() else None,
                ).payload(),
            )
            return None

    async def process_message(
        self,
        channel: BaseChannel,
        request: SendMessageRequest,
        client: Optional[ClientInfo] = None,
    ) -> TurnOutcome:
        started = time.perf_counter()
        session_id = request.session_id
        logger.info("processing turn session=%s length=%s", session_id, len(request.message))

        await channel.emit(
            "messageProcessing",
            MessageProcessingEvent(session_id=session_id, status="started").payload(),
        )

        client = client or channel.client_info
        await self._wait_for_session(session_id)
        await self.conversations.append_turn(
            session_id,
            "user",
            request.message,
            metadata={"userAgent": client.user_agent, "ipAddress": client.ip_address},
        )
        history = await self.conversations.recent_turns(session_id, configs.HISTORY_WINDOW)

        intent = await self.classifier.classify(history, request.message)
        logger.info("session=%s intent=%s fallback=%s", session_id, intent.intent, intent.fallback)

        if intent.intent == "small_talk":
            reply = self._small_talk_reply(intent)
        elif intent.intent == "complaint":
            reply = await self._complaint_reply(session_id, history, request.message)
        else:
            try:
                reply = await self._product_reply(history, request.message, intent)
            except Exception as exc:
                logger.exception("product reply failed session=%s", session_id)
                await channel.emit(
                    "error",
                    ErrorEvent(
                        type="GENERATION_ERROR",
                        message=GENERATION_ERROR_MESSAGE,
                        details=str(exc) if configs.is_development() else None,
                    ).payload(),
                )
                return TurnOutcome(
                    session_id=session_id,
                    response_type="product_query",
                    processing_time=_elapsed_ms(started),
                    failed=True,
                )

        await channel.emit(
            "aiResponse",
            AiResponseEvent(session_id=session_id, message=reply.text, metadata=reply.event_metadata).payload(),
        )

        processing_time = _elapsed_ms(started)
        metadata = {
            "modelUsed": self.model_name,
            "processingTime": processing_time,
            "retrievedProducts": reply.retrieved_products,
            "responseType": reply.response_type,
            "skipRAG": reply.response_type == "small_talk",
            "originalQuery": request.message,
            **reply.turn_metadata,
        }
        self._submit_background(
            self._persist_assistant_turn(session_id, reply.text, metadata, intent.intent), session_id
        )

        await channel.emit(
            "messageProcessing",
            MessageProcessingEvent(
                session_id=session_id, status="completed", processing_time=processing_time
            ).payload(),
        )

        return TurnOutcome(
            session_id=session_id,
            response_type=reply.response_type,
            reply=reply.text,
            processing_time=processing_time,
            retrieved_products=reply.retrieved_products,
            complaint_id=reply.complaint_id,
            is_complete=reply.is_complete,
        )

    def _small_talk_reply(self, intent: IntentResult) -> _Reply:
        return _Reply(
            text=intent.direct_response or "",
            response_type="small_talk",
            event_metadata={"responseType": "small_talk", "skipRAG": True},
        )

    async def _complaint_reply(self, session_id: str, history, message: str) -> _Reply:
        conversation_id = await self.conversations.get_conversation_id(session_id)
        if conversation_id is None:
            raise RuntimeError(f"conversation not found for session {session_id}")

        result = await self.complaint_agent.process_turn(session_id, conversation_id, history, message)
        event_metadata: Dict[str, Any] = {
            "responseType": "complaint",
            "isComplete": result.is_complete,
            "priority": result.priority,
        }
        if result.fallback:
            event_metadata["fallback"] = True

        turn_metadata: Dict[str, Any] = {
            "isComplete": result.is_complete,
            "complaintId": result.complaint_id,
            "priority": result.priority,
        }
        if result.draft is not None:
            turn_metadata[DRAFT_METADATA_KEY] = result.draft

        return _Reply(
            text=result.response_text,
            response_type="complaint",
            event_metadata=event_metadata,
            turn_metadata=turn_metadata,
            complaint_id=result.complaint_id,
            is_complete=result.is_complete,
        )

    async def _product_reply(self, history, message: str, intent: IntentResult) -> _Reply:
        query = intent.clarified_query or message
        retrieval = await self.retriever.retrieve(query, configs.RETRIEVAL_LIMIT)
        text = await self.generator.generate(history, message, retrieval.products)
        references = [{"productId": p.id, "name": p.name, "score": p.score} for p in retrieval.products]
        return _Reply(
            text=text,
            response_type="product_query",
            event_metadata={"responseType": "product_query", "skipRAG": False},
            turn_metadata={"clarifiedQuery": query, "retrievalTier": retrieval.tier},
            retrieved_products=references,
        )

    async def _persist_assistant_turn(
        self, session_id: str, text: str, metadata: Dict[str, Any], intent: str
    ) -> None:
        try:
            await self.conversations.append_turn(session_id, "assistant", text, metadata=metadata, intent=intent)
        except Exception:
            logger.exception("saving assistant turn failed session=%s", session_id)

    def _submit_background(self, coro, session_id: Optional[str] = None) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        if session_id is not None:
            self._pending_writes[session_id] = task
            task.add_done_callback(lambda done: self._forget_write(session_id, done))

    def _forget_write(self, session_id: str, task: asyncio.Task) -> None:
        if self._pending_writes.get(session_id) is task:
            del self._pending_writes[session_id]

    async def _wait_for_session(self, session_id: str) -> None:
        """Hold a new turn until the previous assistant turn of the session is stored."""
        task = self._pending_writes.get(session_id)
        if task is not None and not task.done():
            logger.debug("session=%s waiting for previous assistant turn", session_id)
            await asyncio.gather(task, return_exceptions=True)

    async def wait_for_background(self) -> None:
        """Wait for pending assistant-turn writes (shutdown, tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
