"""Chat conversation turns and the outbound stream chunk envelope.

``ChatMessage`` is the validated form of one conversation turn.  The chunk
models mirror the OpenAI ``chat.completion.chunk`` shape that the dashboard's
browser client already parses (``choices[0].delta.content`` per SSE event,
terminated by ``data: [DONE]``).
"""

from typing import Literal

from pydantic import BaseModel


class ChatMessage(BaseModel):
    """One role-tagged turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str


class ChunkDelta(BaseModel):
    """Incremental content fragment."""

    content: str


class ChunkChoice(BaseModel):
    """Single choice entry inside a stream chunk."""

    delta: ChunkDelta
    index: int = 0
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    """One SSE event payload sent to the caller."""

    choices: list[ChunkChoice]

    @classmethod
    def from_text(cls, text: str) -> "ChatCompletionChunk":
        """Wrap a text fragment in the single-choice envelope."""
        return cls(choices=[ChunkChoice(delta=ChunkDelta(content=text))])
