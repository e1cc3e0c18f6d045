import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

os.environ.setdefault("APP_ENV", "development")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopchat.db.models import Complaint, Conversation, Message
from shopchat.db.session import Base
from shopchat.model.chat.chat_request import ClientInfo
from shopchat.model.conversation.conversation import Turn
from shopchat.model.product.product import ProductContext
from shopchat.service.errors import CompletionError
from shopchat.service.socket.channel import BaseChannel
from shopchat.service.store.complaint_store import ComplaintStore
from shopchat.service.store.conversation_store import ConversationStore
from shopchat.service.store.product_catalog import BaseProductCatalog


class ScriptedCompletion:
    """Completion client double; replies are consumed in call order."""

    model = "stub-model"

    def __init__(self, json_replies: Optional[List[Any]] = None, text_replies: Optional[List[Any]] = None):
        self.json_replies = list(json_replies or [])
        self.text_replies = list(text_replies or [])
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def _next(replies: List[Any]) -> Any:
        if not replies:
            raise CompletionError("no scripted reply left")
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, system_prompt, history, task, options=None) -> str:
        self.calls.append({"kind": "text", "system": system_prompt, "history": history, "task": task})
        return self._next(self.text_replies)

    async def complete_json(self, system_prompt, history, task, options=None) -> Dict[str, Any]:
        self.calls.append({"kind": "json", "system": system_prompt, "history": history, "task": task})
        return self._next(self.json_replies)

    def close(self) -> None:
        pass


class StubEmbedder:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return [0.1, 0.2, 0.3]

    def close(self) -> None:
        pass


class StubCatalog(BaseProductCatalog):
    def __init__(self, vector=None, keyword=None, recent=None):
        self.results = {"vector": vector or [], "keyword": keyword or [], "recent": recent or []}
        self.calls: List[str] = []

    def _answer(self, tier: str, limit: int) -> List[ProductContext]:
        self.calls.append(tier)
        value = self.results[tier]
        if isinstance(value, Exception):
            raise value
        return list(value)[:limit]

    async def vector_search(self, embedding: Sequence[float], limit: int) -> List[ProductContext]:
        return self._answer("vector", limit)

    async def keyword_search(self, query: str, limit: int) -> List[ProductContext]:
        return self._answer("keyword", limit)

    async def recent_in_stock(self, limit: int) -> List[ProductContext]:
        return self._answer("recent", limit)


class RecordingChannel(BaseChannel):
    def __init__(self, channel_id: Optional[str] = None):
        self.id = channel_id or uuid.uuid4().hex
        self.client_info = ClientInfo(user_agent="pytest", ip_address="127.0.0.1")
        self.events: List[tuple] = []

    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        self.events.append((event, data))
        return True

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [data for name, data in self.events if name == event]


def make_product(product_id: int, name: str = "", **fields) -> ProductContext:
    return ProductContext(
        id=str(product_id),
        name=name or f"Product {product_id}",
        brand=fields.pop("brand", "Apple"),
        price=fields.pop("price", 10000000),
        in_stock=fields.pop("in_stock", 3),
        **fields,
    )


def make_turn(role: str, content: str, **metadata) -> Turn:
    return Turn(role=role, content=content, timestamp=datetime.now(timezone.utc), metadata=metadata)


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    Base.metadata.create_all(
        bind=engine,
        tables=[Conversation.__table__, Message.__table__, Complaint.__table__],
    )
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def conversation_store(session_factory):
    return ConversationStore(session_factory)


@pytest.fixture
def complaint_store(session_factory):
    return ComplaintStore(session_factory)


@pytest.fixture
def session_id():
    return str(uuid.uuid4())


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def completion():
    return ScriptedCompletion()


@pytest.fixture
def channel_factory():
    return RecordingChannel


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def turn_factory():
    return make_turn


@pytest.fixture
def catalog_factory():
    return StubCatalog


@pytest.fixture
def embedder_factory():
    return StubEmbedder
