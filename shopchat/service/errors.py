"""Error types shared by the chat pipeline, its clients and its stores."""

from dataclasses import dataclass


@dataclass
class ChatValidationError(Exception):
    """Inbound turn rejected before any pipeline phase runs.

    Attributes:
        type: Error code sent to the client (VALIDATION_ERROR, INVALID_SESSION, ...)
        message: User-facing message
    """

    type: str
    message: str

    def __str__(self) -> str:
        return f"[{self.type}] {self.message}"


class CompletionError(RuntimeError):
    """The completion endpoint failed or returned nothing usable."""


class EmbeddingError(RuntimeError):
    """The embedding endpoint failed or returned a malformed vector."""


class InvalidStatusTransition(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"complaint cannot move from {current} to {target}")
        self.current = current
        self.target = target


class ComplaintNotFound(LookupError):
    pass
