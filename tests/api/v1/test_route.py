import asyncio

import pytest
from fastapi.testclient import TestClient

from shopchat.main import create_app
from shopchat.service.chat.chat import PipelineOrchestrator
from shopchat.service.chat.complaint_agent import ComplaintAgent
from shopchat.service.chat.generator import ResponseGenerator
from shopchat.service.chat.intent import IntentClassifier
from shopchat.service.chat.retrieval import ProductRetriever
from shopchat.service.socket.handler import ChatSocketHandler


@pytest.fixture
def app(completion, conversation_store, complaint_store, catalog_factory, embedder_factory):
    orchestrator = PipelineOrchestrator(
        conversations=conversation_store,
        classifier=IntentClassifier(completion),
        retriever=ProductRetriever(embedder_factory(), catalog_factory()),
        generator=ResponseGenerator(completion),
        complaint_agent=ComplaintAgent(completion, complaint_store),
        model_name="stub-model",
    )
    return create_app(handler=ChatSocketHandler(orchestrator), conversations=conversation_store)


def test_websocket_chat_turn(app, completion, conversation_store, session_id):
    completion.json_replies = [{"intent": "small_talk", "direct_response": "Dạ em chào anh ạ!"}]

    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/ws/chat") as ws:
            welcome = ws.receive_json()
            assert welcome["event"] == "welcome"
            assert welcome["data"]["serverInfo"]["version"] == "1.0.0"

            ws.send_json({"event": "ping"})
            assert ws.receive_json()["event"] == "pong"

            ws.send_json({"event": "sendMessage", "data": {"sessionId": session_id, "message": "chào em"}})
            frames = [ws.receive_json() for _ in range(3)]

        assert [f["event"] for f in frames] == ["messageProcessing", "aiResponse", "messageProcessing"]
        assert frames[1]["data"]["message"] == "Dạ em chào anh ạ!"
        assert frames[1]["data"]["metadata"]["skipRAG"] is True

    record = asyncio.run(conversation_store.load_conversation(session_id))
    assert [t.content for t in record.turns] == ["chào em", "Dạ em chào anh ạ!"]


def test_websocket_rejects_bad_frames(app):
    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/ws/chat") as ws:
            ws.receive_json()

            ws.send_text("not json")
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["data"]["type"] == "VALIDATION_ERROR"

            ws.send_bytes(b"\x00\x01")
            error = ws.receive_json()
            assert error["data"]["type"] == "VALIDATION_ERROR"

            ws.send_json({"event": "ping"})
            assert ws.receive_json()["event"] == "pong"

            ws.send_json({"event": "sendMessage", "data": {"sessionId": "abc", "message": "hi"}})
            error = ws.receive_json()
            assert error["data"]["type"] == "INVALID_SESSION"


def test_get_conversation(app, conversation_store, session_id):
    asyncio.run(conversation_store.append_turn(session_id, "user", "iphone 15 còn hàng không?"))
    asyncio.run(conversation_store.append_turn(session_id, "assistant", "Dạ còn 3 máy ạ."))

    with TestClient(app) as client:
        response = client.get(f"/api/v1/conversations/{session_id}")

    assert response.status_code == 200
    assert response.json() == {
        "session_id": session_id,
        "message_count": 2,
        "messages": [
            {"role": "user", "content": "iphone 15 còn hàng không?"},
            {"role": "assistant", "content": "Dạ còn 3 máy ạ."},
        ],
    }


def test_get_conversation_errors(app, session_id):
    with TestClient(app) as client:
        assert client.get("/api/v1/conversations/not-a-uuid").status_code == 422
        assert client.get(f"/api/v1/conversations/{session_id}").status_code == 404


def test_stats(app):
    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"event": "joinRoom", "data": "support"})
            assert ws.receive_json()["event"] == "roomJoined"

            stats = client.get("/api/v1/stats").json()

    assert stats["connectedClients"] == 1
    assert stats["rooms"] == {"support": 1}
