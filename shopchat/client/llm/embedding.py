import asyncio
import logging
import re
from typing import List, Optional

from openai import OpenAI

import shopchat.config.config as configs
from shopchat.service.errors import EmbeddingError

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text or "").strip()


class EmbeddingClient:
    """Turns text into a fixed-length vector for product similarity search."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = model or configs.EMBEDDING_MODEL
        self.dimensions = dimensions or configs.EMBEDDING_DIMENSIONS
        self._client = client or OpenAI(
            api_key=api_key or configs.OPENAI_API_KEY,
            timeout=timeout if timeout is not None else configs.LLM_TIMEOUT_SECONDS,
            max_retries=configs.LLM_MAX_RETRIES,
        )

    def _call(self, text: str) -> List[float]:
        response = self._client.embeddings.create(
            model=self.model,
            input=text,
            encoding_format="float",
        )
        if not response.data or not response.data[0].embedding:
            raise EmbeddingError("embedding response has no vector")
        return list(response.data[0].embedding)

    async def embed(self, text: str) -> List[float]:
        cleaned = clean_text(text)
        if not cleaned:
            raise EmbeddingError("cannot embed empty text")
        if len(cleaned) > configs.EMBEDDING_MAX_CHARS:
            logger.warning("embedding input truncated from %s chars", len(cleaned))
            cleaned = cleaned[: configs.EMBEDDING_MAX_CHARS]

        try:
            vector = await asyncio.to_thread(self._call, cleaned)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"embedding call failed: {exc}") from exc

        if len(vector) != self.dimensions:
            raise EmbeddingError(f"embedding has {len(vector)} dimensions, expected {self.dimensions}")
        return vector

    def close(self) -> None:
        self._client.close()
