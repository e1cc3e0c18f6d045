import pytest

from shopchat.service.chat.intent import SMALL_TALK_FALLBACK, IntentClassifier
from shopchat.service.errors import CompletionError


@pytest.mark.asyncio
async def test_product_query_uses_clarified_query(completion, turn_factory):
    completion.json_replies = [
        {"intent": "product_query", "clarified_query": "giá iPhone 15 Pro Max", "direct_response": None}
    ]
    history = [turn_factory("user", "iPhone 15 Pro Max còn hàng không?")]

    result = await IntentClassifier(completion).classify(history, "giá bao nhiêu?")

    assert result.intent == "product_query"
    assert result.clarified_query == "giá iPhone 15 Pro Max"
    assert result.fallback is False
    assert completion.calls[0]["history"] == history
    assert "giá bao nhiêu?" in completion.calls[0]["task"]


@pytest.mark.asyncio
async def test_blank_clarified_query_falls_back_to_user_text(completion):
    completion.json_replies = [{"intent": "product_query", "clarified_query": "  "}]

    result = await IntentClassifier(completion).classify([], "samsung s24")

    assert result.clarified_query == "samsung s24"


@pytest.mark.asyncio
async def test_small_talk_keeps_direct_response(completion):
    completion.json_replies = [{"intent": "small_talk", "direct_response": "Dạ em chào anh ạ!"}]

    result = await IntentClassifier(completion).classify([], "chào em")

    assert result.intent == "small_talk"
    assert result.direct_response == "Dạ em chào anh ạ!"


@pytest.mark.asyncio
async def test_small_talk_without_reply_gets_greeting(completion):
    completion.json_replies = [{"intent": "small_talk", "direct_response": None}]

    result = await IntentClassifier(completion).classify([], "hi")

    assert result.direct_response == SMALL_TALK_FALLBACK


@pytest.mark.asyncio
async def test_complaint_label(completion):
    completion.json_replies = [{"intent": "complaint", "clarified_query": "ignored"}]

    result = await IntentClassifier(completion).classify([], "máy bị lỗi")

    assert result.intent == "complaint"
    assert result.clarified_query is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        {"intent": "refund"},
        {"clarified_query": "no intent"},
        {"intent": 3},
        CompletionError("completion is not a JSON object"),
        RuntimeError("socket closed"),
    ],
)
async def test_unusable_output_falls_back_to_product_query(completion, reply):
    completion.json_replies = [reply]

    result = await IntentClassifier(completion).classify([], "tai nghe bluetooth")

    assert result.intent == "product_query"
    assert result.clarified_query == "tai nghe bluetooth"
    assert result.direct_response is None
    assert result.fallback is True
