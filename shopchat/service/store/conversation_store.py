import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import shopchat.config.config as configs
from shopchat.client.db.psql import session_scope
from shopchat.db.models import Conversation, Message
from shopchat.db.session import utcnow
from shopchat.model.conversation.conversation import ConversationRecord, Turn

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant", "system")


def _to_turn(message: Message) -> Turn:
    return Turn(
        role=message.role,
        content=message.content,
        timestamp=message.created_at,
        intent=message.intent,
        metadata=dict(message.meta or {}),
    )


class ConversationStore:
    """Append-only per-session turn log backed by the conversations/messages tables."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _load(self, session_id: str) -> Optional[ConversationRecord]:
        with session_scope(self._session_factory) as db:
            conversation = db.execute(
                select(Conversation).where(Conversation.session_id == session_id)
            ).scalar_one_or_none()
            if conversation is None:
                return None
            messages = db.execute(
                select(Message).where(Message.conversation_id == conversation.id).order_by(Message.id)
            ).scalars().all()
            return ConversationRecord(
                id=conversation.id,
                session_id=conversation.session_id,
                status=conversation.status,
                message_count=conversation.message_count,
                last_message_at=conversation.last_message_at,
                turns=[_to_turn(m) for m in messages],
            )

    def _append(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]],
        intent: Optional[str],
    ) -> Turn:
        with session_scope(self._session_factory) as db:
            conversation = db.execute(
                select(Conversation).where(Conversation.session_id == session_id)
            ).scalar_one_or_none()
            if conversation is None:
                logger.info("creating conversation for session=%s", session_id)
                conversation = Conversation(session_id=session_id, status="active", message_count=0)
                db.add(conversation)
                db.flush()

            message = Message(
                conversation_id=conversation.id,
                role=role,
                content=content,
                intent=intent,
                meta=metadata or None,
                created_at=utcnow(),
            )
            db.add(message)
            db.flush()

            conversation.message_count = db.execute(
                select(func.count(Message.id)).where(Message.conversation_id == conversation.id)
            ).scalar_one()
            conversation.last_message_at = message.created_at
            return _to_turn(message)

    def _recent(self, session_id: str, limit: int) -> List[Turn]:
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Message)
                .join(Conversation, Message.conversation_id == Conversation.id)
                .where(Conversation.session_id == session_id)
                .order_by(Message.id.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_turn(m) for m in reversed(rows)]

    def _conversation_id(self, session_id: str) -> Optional[int]:
        with session_scope(self._session_factory) as db:
            return db.execute(
                select(Conversation.id).where(Conversation.session_id == session_id)
            ).scalar_one_or_none()

    async def load_conversation(self, session_id: str) -> Optional[ConversationRecord]:
        return await asyncio.to_thread(self._load, session_id)

    async def get_conversation_id(self, session_id: str) -> Optional[int]:
        return await asyncio.to_thread(self._conversation_id, session_id)

    async def append_turn(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        intent: Optional[str] = None,
    ) -> Turn:
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        text = (content or "").strip()
        if not text:
            raise ValueError("turn content must not be empty")
        if len(text) > configs.MAX_TURN_LENGTH:
            raise ValueError(f"turn content exceeds {configs.MAX_TURN_LENGTH} characters")
        return await asyncio.to_thread(self._append, session_id, role, text, metadata, intent)

    async def recent_turns(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        return await asyncio.to_thread(self._recent, session_id, limit or configs.HISTORY_WINDOW)
