"""Gemini streaming client abstraction with protocol-based swappable implementations.

Production code uses ``GeminiClient``, which POSTs to the Generative
Language API ``streamGenerateContent?alt=sse`` endpoint over ``httpx`` and
hands back the still-open response so the router can relay bytes as they
arrive.  Request bodies are built from ``google.genai.types`` models and
serialized with their camelCase aliases.

Tests use ``InMemoryLLMClient``, which records calls and replays canned SSE
byte chunks without network access.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Protocol

import httpx
import structlog
from google.genai import types
from pydantic import BaseModel

logger = structlog.get_logger()

TEMPERATURE = 0.7
TOP_P = 0.95
MAX_OUTPUT_TOKENS = 2048

SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


class ModelError(Exception):
    """Base class for failures opening the model stream."""


class ModelUnavailableError(ModelError):
    """The model endpoint could not be reached."""


class ModelAPIError(ModelError):
    """The model endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"Gemini API error ({status_code})")
        self.status_code = status_code
        self.body = body


class ModelRateLimitedError(ModelAPIError):
    """The model endpoint answered 429."""

    def __init__(self, body: str = "") -> None:
        super().__init__(429, body)


class ModelStream(Protocol):
    """An open upstream response body. ``httpx.Response`` satisfies it."""

    def aiter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class LLMClient(Protocol):
    """Protocol for opening a streaming generation."""

    async def open_stream(self, system_prompt: str, contents: list[types.Content]) -> ModelStream:
        """Start generation and return the open SSE stream.

        Raises:
            ModelUnavailableError: If the endpoint is unreachable.
            ModelRateLimitedError: If the endpoint answers 429.
            ModelAPIError: For any other non-2xx answer.
        """
        ...


def build_request_body(system_prompt: str, contents: list[types.Content]) -> dict:
    """Build the JSON body for ``streamGenerateContent``."""
    system = types.Content(parts=[types.Part(text=system_prompt)])
    config = types.GenerationConfig(
        temperature=TEMPERATURE,
        top_p=TOP_P,
        max_output_tokens=MAX_OUTPUT_TOKENS,
    )
    safety = [
        types.SafetySetting(
            category=category,
            threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
        )
        for category in SAFETY_CATEGORIES
    ]

    def dump(model: BaseModel) -> dict:
        return model.model_dump(mode="json", by_alias=True, exclude_none=True)

    return {
        "systemInstruction": dump(system),
        "contents": [dump(c) for c in contents],
        "generationConfig": dump(config),
        "safetySettings": [dump(s) for s in safety],
    }


class GeminiClient:
    """Production Gemini client streaming over the REST SSE endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = f"{api_base.rstrip('/')}/models/{model}:streamGenerateContent"
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0)
        )

    async def open_stream(self, system_prompt: str, contents: list[types.Content]) -> httpx.Response:
        """POST the conversation and return the streaming response."""
        request = self._http.build_request(
            "POST",
            self._url,
            params={"alt": "sse"},
            headers={"x-goog-api-key": self._api_key},
            json=build_request_body(system_prompt, contents),
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.TransportError as exc:
            logger.error("gemini_unreachable", model=self._model, error=repr(exc))
            raise ModelUnavailableError(str(exc)) from exc

        if response.is_success:
            return response

        try:
            await response.aread()
            body = response.text
        finally:
            await response.aclose()

        logger.error("gemini_error_status", model=self._model, status=response.status_code, body=body[:500])
        if response.status_code == 429:
            raise ModelRateLimitedError(body)
        raise ModelAPIError(response.status_code, body)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()


def sse_event(payload: dict) -> bytes:
    """Encode *payload* as one Gemini-style SSE ``data:`` event."""
    return f"data: {json.dumps(payload)}\r\n\r\n".encode()


def text_event(text: str, finish_reason: str | None = None) -> bytes:
    """Encode a Gemini candidate carrying *text* as an SSE event."""
    candidate: dict = {"content": {"role": "model", "parts": [{"text": text}]}}
    if finish_reason:
        candidate["finishReason"] = finish_reason
    return sse_event({"candidates": [candidate]})


class InMemoryStream:
    """Replays byte chunks and records whether it was closed."""

    def __init__(self, chunks: list[bytes], error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error
        self.closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            if self.closed:
                return
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


class InMemoryLLMClient:
    """Test double that records calls and streams canned SSE chunks.

    Set ``error`` to make ``open_stream`` raise, or ``stream_error`` to make
    the returned stream fail after its chunks.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.chunks: list[bytes] = [
            text_event("test "),
            text_event("answer", finish_reason="STOP"),
        ]
        self.error: Exception | None = None
        self.stream_error: Exception | None = None
        self.streams: list[InMemoryStream] = []

    async def open_stream(self, system_prompt: str, contents: list[types.Content]) -> InMemoryStream:
        """Record the call, then raise ``error`` or return a replay stream."""
        self.calls.append({"system_prompt": system_prompt, "contents": contents})
        if self.error is not None:
            raise self.error
        stream = InMemoryStream(self.chunks, self.stream_error)
        self.streams.append(stream)
        return stream
