"""Conversation payload validation.

Runs before any external I/O.  Every violation raises a subclass of
``ChatValidationError`` whose ``reason`` is safe to return to the caller.
"""

from app.schemas.chat import ChatMessage
from app.services.sanitize import strip_control_chars

# Hard limits against context-window abuse and resource exhaustion.
MAX_MESSAGES: int = 40
MAX_MESSAGE_LENGTH: int = 4_000
MAX_TOTAL_CHARS: int = 60_000

ALLOWED_ROLES = frozenset({"user", "assistant"})


class ChatValidationError(Exception):
    """Base class for rejected conversation payloads."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class EmptyConversationError(ChatValidationError):
    """``messages`` is missing, not a list, or empty."""


class TooManyTurnsError(ChatValidationError):
    """More turns than ``MAX_MESSAGES``."""


class MalformedTurnError(ChatValidationError):
    """A turn is not an object with a valid role and string content."""


class MessageTooLongError(ChatValidationError):
    """A single turn exceeds ``MAX_MESSAGE_LENGTH``."""


class ConversationTooLargeError(ChatValidationError):
    """The summed content length exceeds ``MAX_TOTAL_CHARS``."""


class InvalidTurnOrderError(ChatValidationError):
    """The conversation does not end with a user turn."""


def validate_messages(raw: object) -> list[ChatMessage]:
    """Validate a raw ``messages`` payload and return sanitized turns.

    Args:
        raw: The decoded ``messages`` value from the request body.

    Returns:
        The turns in order, with control characters stripped from content.

    Raises:
        ChatValidationError: On the first violation found.
    """
    if not isinstance(raw, list) or not raw:
        raise EmptyConversationError("messages must be a non-empty array")
    if len(raw) > MAX_MESSAGES:
        raise TooManyTurnsError(f"Too many messages (max {MAX_MESSAGES})")

    messages: list[ChatMessage] = []
    total_chars = 0
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise MalformedTurnError(f"Message at index {i} is not an object")

        role = item.get("role")
        content = item.get("content")
        if not isinstance(role, str) or role not in ALLOWED_ROLES:
            raise MalformedTurnError(
                f"Invalid role at index {i}. Must be 'user' or 'assistant'"
            )
        if not isinstance(content, str):
            raise MalformedTurnError(f"content at index {i} must be a string")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise MessageTooLongError(
                f"Message at index {i} exceeds {MAX_MESSAGE_LENGTH} characters"
            )

        total_chars += len(content)
        if total_chars > MAX_TOTAL_CHARS:
            raise ConversationTooLargeError("Total conversation length exceeds size limit")

        messages.append(ChatMessage(role=role, content=strip_control_chars(content)))

    if messages[-1].role != "user":
        raise InvalidTurnOrderError("Last message must be from the user")

    return messages
