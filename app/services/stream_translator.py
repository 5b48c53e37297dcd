"""Gemini SSE to OpenAI-compatible SSE translation.

Gemini emits ``data: {"candidates":[{"content":{"parts":[{"text":...}]}}]}``
events; the browser client reads ``data: {"choices":[{"delta":{"content":...}}]}``
chunks terminated by ``data: [DONE]``.  Each complete upstream line is
translated as soon as it arrives.  An incomplete trailing line stays in the
buffer until the next read, so nothing is held longer than one line.

The terminal ``[DONE]`` event is emitted exactly once, on every path that
still has a reader: normal end, upstream error, or unexpected EOF.
"""

from __future__ import annotations

import codecs
import enum
import json
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from app.schemas.chat import ChatCompletionChunk
from app.services.gemini_client import ModelStream

logger = structlog.get_logger()

DONE_EVENT = b"data: [DONE]\n\n"

FINISH_NOTICES = {
    "SAFETY": "\n\n*Content filtered by safety settings.*",
    "MAX_TOKENS": "\n\n*Response truncated: output length limit reached.*",
    "RECITATION": "\n\n*Response stopped: content matched a protected source.*",
}
DEFAULT_FINISH_NOTICE = "\n\n*Response ended early ({reason}).*"
BLOCKED_PROMPT_NOTICE = "*The request was blocked by safety settings ({reason}).*"
INTERRUPTED_NOTICE = "\n\n*Response interrupted. Please try again.*"


class StreamState(enum.Enum):
    """Lifecycle of one translated stream."""

    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    STREAMING = "streaming"
    DRAINING = "draining"
    CLOSED = "closed"


def encode_chunk(text: str) -> bytes:
    """Wrap *text* in one OpenAI-compatible ``data:`` event."""
    return f"data: {ChatCompletionChunk.from_text(text).model_dump_json()}\n\n".encode()


def _candidate_text(candidate: dict) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )


class StreamTranslator:
    """Incremental translator fed with raw upstream bytes."""

    def __init__(self) -> None:
        self.state = StreamState.AWAITING_FIRST_BYTE
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finish_reason: str | None = None

    def feed(self, data: bytes) -> list[bytes]:
        """Consume *data* and return the events for every completed line."""
        if self.state in (StreamState.DRAINING, StreamState.CLOSED):
            return []
        self.state = StreamState.STREAMING

        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")

        out: list[bytes] = []
        for line in lines:
            out.extend(self._translate_line(line))
        return out

    def finish(self) -> list[bytes]:
        """Flush the tail and emit the terminal event.

        Returns an empty list if the stream was already closed.
        """
        if self.state is StreamState.CLOSED:
            return []
        self.state = StreamState.DRAINING

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        out = self._translate_line(tail) if tail.strip() else []

        out.append(DONE_EVENT)
        self.state = StreamState.CLOSED
        return out

    def interrupt(self) -> list[bytes]:
        """Emit a notice for an upstream failure, then the terminal event."""
        if self.state is StreamState.CLOSED:
            return []
        self._buffer = ""
        return [encode_chunk(INTERRUPTED_NOTICE), *self.finish()]

    def abandon(self) -> None:
        """Close without a terminal event; the reader is gone."""
        self._buffer = ""
        self.state = StreamState.CLOSED

    def _translate_line(self, line: str) -> list[bytes]:
        line = line.strip()
        if not line.startswith("data:"):
            return []
        payload = line[5:].strip()
        if not payload or payload == "[DONE]":
            return []
        try:
            event = json.loads(payload)
        except ValueError:
            logger.debug("stream_bad_json_line", length=len(payload))
            return []
        if not isinstance(event, dict):
            return []

        out: list[bytes] = []
        feedback = event.get("promptFeedback") or {}
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if block_reason:
            logger.warning("gemini_prompt_blocked", reason=block_reason)
            out.append(encode_chunk(BLOCKED_PROMPT_NOTICE.format(reason=block_reason)))

        candidates = event.get("candidates") or []
        candidate = candidates[0] if candidates and isinstance(candidates[0], dict) else {}

        text = _candidate_text(candidate)
        if text:
            out.append(encode_chunk(text))

        reason = candidate.get("finishReason")
        if reason and reason != "STOP":
            self.finish_reason = reason
            logger.warning("gemini_finish_reason", reason=reason)
            notice = FINISH_NOTICES.get(reason, DEFAULT_FINISH_NOTICE.format(reason=reason))
            out.append(encode_chunk(notice))
        elif reason:
            self.finish_reason = reason
        return out


async def translate_gemini_stream(
    upstream: ModelStream,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[bytes]:
    """Relay *upstream* as OpenAI-compatible SSE bytes.

    Stops reading as soon as *is_disconnected* reports the caller has gone.
    The upstream response is always closed.
    """
    translator = StreamTranslator()
    try:
        try:
            async for data in upstream.aiter_bytes():
                if is_disconnected is not None and await is_disconnected():
                    logger.info("chat_client_disconnected", state=translator.state.value)
                    translator.abandon()
                    return
                for event in translator.feed(data):
                    yield event
        except Exception as exc:
            logger.error("gemini_stream_interrupted", state=translator.state.value, error=repr(exc))
            for event in translator.interrupt():
                yield event
            return

        for event in translator.finish():
            yield event
        logger.info("chat_stream_completed", finish_reason=translator.finish_reason)
    finally:
        await upstream.aclose()
