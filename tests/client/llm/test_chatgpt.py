from types import SimpleNamespace

import pytest

from shopchat.client.llm.chatgpt import CompletionClient, CompletionOptions, history_messages, parse_json_payload
from shopchat.service.errors import CompletionError


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions):
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions), close=lambda: None)
    return CompletionClient(api_key="test", model="gpt-test", client=fake)


def test_parse_json_payload_handles_fences():
    assert parse_json_payload('```json\n{"intent": "small_talk"}\n```') == {"intent": "small_talk"}
    assert parse_json_payload('```\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_payload(' {"a": 2} ') == {"a": 2}

    with pytest.raises(ValueError):
        parse_json_payload("[1, 2]")
    with pytest.raises(ValueError):
        parse_json_payload("not json")


def test_history_roles_map_to_user_or_assistant(turn_factory):
    history = [turn_factory("user", "hi"), turn_factory("assistant", "chào"), turn_factory("system", "note")]

    assert [m["role"] for m in history_messages(history)] == ["user", "assistant", "user"]
    assert history_messages(None) == []


@pytest.mark.asyncio
async def test_complete_builds_messages(turn_factory):
    completions = FakeCompletions(content="  Dạ có ạ.  ")
    client = _client(completions)

    reply = await client.complete("system", [turn_factory("user", "trước đó")], "câu hỏi", CompletionOptions(0.2, 100))

    assert reply == "Dạ có ạ."
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["temperature"] == 0.2
    assert [m["content"] for m in completions.kwargs["messages"]] == ["system", "trước đó", "câu hỏi"]
    assert "response_format" not in completions.kwargs


@pytest.mark.asyncio
async def test_complete_json_requests_json_mode():
    completions = FakeCompletions(content='{"intent": "complaint"}')

    data = await _client(completions).complete_json("system", [], "task", CompletionOptions(json_mode=True))

    assert data == {"intent": "complaint"}
    assert completions.kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "completions",
    [FakeCompletions(content="xin chào"), FakeCompletions(content="   "), FakeCompletions(error=TimeoutError("slow"))],
)
async def test_failures_raise_completion_error(completions):
    with pytest.raises(CompletionError):
        await _client(completions).complete_json("system", [], "task")
