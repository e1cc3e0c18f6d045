import re
import uuid
from typing import Any, Iterable, Optional

import shopchat.config.config as configs

SESSION_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Local number with a leading 0, or the +84 country code, then 9-10 digits
PHONE_RE = re.compile(r"^(0|\+84)[0-9]{9,10}$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-.]")


def is_valid_session_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if not SESSION_ID_RE.match(value):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def normalize_email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    if not email or not EMAIL_RE.match(email):
        return None
    return email


def normalize_phone(value: Any) -> Optional[str]:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    phone = PHONE_SEPARATORS_RE.sub("", value.strip())
    if not phone or not PHONE_RE.match(phone):
        return None
    return phone


def normalize_priority(value: Any) -> str:
    if isinstance(value, str):
        priority = value.strip().lower()
        if priority in configs.COMPLAINT_PRIORITIES:
            return priority
    return "medium"


def normalize_tags(values: Optional[Iterable[Any]]) -> list[str]:
    """Lower-case, strip and de-duplicate tags, keeping first-seen order."""
    if values is None or isinstance(values, (str, bytes)):
        return []
    seen: set[str] = set()
    tags: list[str] = []
    for raw in values:
        if not isinstance(raw, str):
            continue
        tag = raw.strip().lower()
        if tag and tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


def merge_tags(existing: Optional[Iterable[Any]], incoming: Optional[Iterable[Any]]) -> list[str]:
    return normalize_tags([*(existing or []), *(incoming or [])])
