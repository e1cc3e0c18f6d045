import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI

import shopchat.config.config as configs
from shopchat.model.conversation.conversation import Turn
from shopchat.service.errors import CompletionError

logger = logging.getLogger(__name__)

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
FENCED_RE = re.compile(r"```\s*([\s\S]*?)\s*```")


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = 0.7
    max_tokens: int = 800
    json_mode: bool = False


def parse_json_payload(text: str) -> Dict[str, Any]:
    """Parse a JSON object out of model output, tolerating markdown fences."""
    cleaned = (text or "").strip()
    if "```json" in cleaned:
        match = FENCED_JSON_RE.search(cleaned)
        if match:
            cleaned = match.group(1).strip()
    elif "```" in cleaned:
        match = FENCED_RE.search(cleaned)
        if match:
            cleaned = match.group(1).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def history_messages(history: Optional[Sequence[Turn]]) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    for turn in history or []:
        role = "assistant" if turn.role == "assistant" else "user"
        messages.append({"role": role, "content": turn.content})
    return messages


class CompletionClient:
    """Chat-completions wrapper; one instance per process, injected into the pipeline."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = model or configs.MODEL
        self._client = client or OpenAI(
            api_key=api_key or configs.OPENAI_API_KEY,
            timeout=timeout if timeout is not None else configs.LLM_TIMEOUT_SECONDS,
            max_retries=max_retries if max_retries is not None else configs.LLM_MAX_RETRIES,
        )

    def _call(self, messages: List[Dict[str, str]], options: CompletionOptions) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self._client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise CompletionError("completion returned an empty message")
        return content.strip()

    async def complete(
        self,
        system_prompt: str,
        history: Optional[Sequence[Turn]],
        task: str,
        options: Optional[CompletionOptions] = None,
    ) -> str:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history_messages(history))
        messages.append({"role": "user", "content": task})
        try:
            return await asyncio.to_thread(self._call, messages, options or CompletionOptions())
        except CompletionError:
            raise
        except Exception as exc:
            raise CompletionError(f"completion call failed: {exc}") from exc

    async def complete_json(
        self,
        system_prompt: str,
        history: Optional[Sequence[Turn]],
        task: str,
        options: Optional[CompletionOptions] = None,
    ) -> Dict[str, Any]:
        opts = options or CompletionOptions(json_mode=True)
        raw = await self.complete(system_prompt, history, task, opts)
        try:
            return parse_json_payload(raw)
        except ValueError as exc:
            logger.warning("completion is not a JSON object: %s", raw[:200])
            raise CompletionError("completion is not a JSON object") from exc

    def close(self) -> None:
        self._client.close()
