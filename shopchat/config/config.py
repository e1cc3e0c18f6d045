import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


# development | production
APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SERVER_VERSION = "1.0.0"

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "your-default-api-key")
MODEL = os.getenv("MODEL", "gpt-4o")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSIONS = _int_env("EMBEDDING_DIMENSIONS", 1536)
EMBEDDING_MAX_CHARS = 8000
LLM_TIMEOUT_SECONDS = _float_env("LLM_TIMEOUT_SECONDS", 30.0)
LLM_MAX_RETRIES = _int_env("LLM_MAX_RETRIES", 2)

INTENTS = ("product_query", "small_talk", "complaint")
HISTORY_WINDOW = _int_env("HISTORY_WINDOW", 6)
MAX_MESSAGE_LENGTH = _int_env("MAX_MESSAGE_LENGTH", 1000)
MAX_TURN_LENGTH = 10000
RETRIEVAL_LIMIT = _int_env("RETRIEVAL_LIMIT", 5)
# sendMessage frames a channel may have waiting behind the turn in flight
MAX_QUEUED_MESSAGES = _int_env("MAX_QUEUED_MESSAGES", 10)

COMPLAINT_STATUSES = ("open", "in_progress", "resolved", "closed")
COMPLAINT_PRIORITIES = ("low", "medium", "high", "urgent")
ACTIVE_COMPLAINT_STATUSES = ("open", "in_progress")


def is_development() -> bool:
    return APP_ENV == "development"
