import logging
from typing import Optional

from fastapi import FastAPI

import shopchat.config.config as configs
from shopchat.api.v1.route import api_router as MainRouter
from shopchat.client.llm.chatgpt import CompletionClient
from shopchat.client.llm.embedding import EmbeddingClient
from shopchat.db.models import Complaint, Conversation, Message
from shopchat.db.session import Base, engine
from shopchat.service.chat.chat import PipelineOrchestrator
from shopchat.service.chat.complaint_agent import ComplaintAgent
from shopchat.service.chat.generator import ResponseGenerator
from shopchat.service.chat.intent import IntentClassifier
from shopchat.service.chat.retrieval import ProductRetriever
from shopchat.service.socket.handler import ChatSocketHandler
from shopchat.service.store.complaint_store import ComplaintStore
from shopchat.service.store.conversation_store import ConversationStore
from shopchat.service.store.product_catalog import SqlProductCatalog

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, configs.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    handler: Optional[ChatSocketHandler] = None,
    conversations: Optional[ConversationStore] = None,
) -> FastAPI:
    """Build the app; tests pass their own handler and store to skip the DB and OpenAI wiring."""
    app = FastAPI(title="shopchat", version=configs.SERVER_VERSION)
    app.include_router(router=MainRouter, prefix="/api/v1")
    app.state.socket_handler = handler
    app.state.conversation_store = conversations
    app.state.owned_clients = []

    @app.on_event("startup")
    def startup() -> None:
        configure_logging()
        if app.state.socket_handler is not None:
            return

        # products belong to the catalog service and are only read here
        Base.metadata.create_all(
            bind=engine,
            tables=[Conversation.__table__, Message.__table__, Complaint.__table__],
        )

        completion = CompletionClient()
        embedder = EmbeddingClient()
        store = app.state.conversation_store or ConversationStore()
        orchestrator = PipelineOrchestrator(
            conversations=store,
            classifier=IntentClassifier(completion),
            retriever=ProductRetriever(embedder, SqlProductCatalog()),
            generator=ResponseGenerator(completion),
            complaint_agent=ComplaintAgent(completion, ComplaintStore()),
            model_name=completion.model,
        )
        app.state.conversation_store = store
        app.state.socket_handler = ChatSocketHandler(orchestrator)
        app.state.owned_clients = [completion, embedder]
        logger.info("shopchat started env=%s model=%s", configs.APP_ENV, completion.model)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if app.state.socket_handler is not None:
            await app.state.socket_handler.shutdown()
        for client in app.state.owned_clients:
            client.close()
        logger.info("shopchat stopped")

    return app


app = create_app()
