"""Model client — HTTP connection to a chat-completion backend.

The engine talks to any object matching the ``ModelClient`` protocol:

    async def complete(messages, *, model, temperature) -> str
    async def stream(messages, on_chunk, *, model, temperature) -> str
    async def list_models() -> list[str]

``stream`` calls ``on_chunk`` with each text fragment, in order, before it
returns the full text. Every failure is raised as a ``ModelError``
subclass so the engine can recover at the turn boundary.

``HttpModelClient`` is the real implementation and is selected by
provider_format:

    "ollama"  — POST /api/chat              NDJSON stream
                GET  /api/tags              model list
    "openai"  — POST /v1/chat/completions   SSE stream ("data: ...")
                GET  /v1/models             model list

Tests use StubModel (defined in the test helpers) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, Literal, Protocol

import httpx

from textquest.models import Message

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Errors: one class per failure family
# ---------------------------------------------------------------------------

class ModelError(RuntimeError):
    """Raised when the model backend cannot be reached or returns an error."""


class ModelConnectionError(ModelError):
    """Transport failure: refused connection, DNS, timeout."""


class ModelStatusError(ModelError):
    """The backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelResponseError(ModelError):
    """The reply body could not be decoded."""


# ---------------------------------------------------------------------------
# Protocol: every client implementation must match these signatures
# ---------------------------------------------------------------------------

class ModelClient(Protocol):
    async def complete(
        self, messages: Sequence[Message], *, model: str, temperature: float
    ) -> str: ...

    async def stream(
        self,
        messages: Sequence[Message],
        on_chunk: ChunkCallback,
        *,
        model: str,
        temperature: float,
    ) -> str: ...

    async def list_models(self) -> list[str]: ...


# ---------------------------------------------------------------------------
# HttpModelClient: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["ollama", "openai"]


class HttpModelClient:
    """Async HTTP client for chat backends.

    Args:
        base_url:        Backend root, e.g. "http://localhost:11434".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "ollama".
        timeout:         HTTP timeout in seconds. Defaults to 120.
        transport:       Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "ollama",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if provider_format not in ("ollama", "openai"):
            raise ValueError(f"Unknown provider format: {provider_format!r}")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, messages: Sequence[Message], model: str, temperature: float, stream: bool
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        wire = [{"role": m.role, "content": m.content} for m in messages]
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            return url, {
                "model": model, "messages": wire,
                "temperature": temperature, "stream": stream,
            }

        # ollama (default)
        url = f"{self._base_url}/api/chat"
        return url, {
            "model": model, "messages": wire, "stream": stream,
            "options": {"temperature": temperature},
        }

    def _parse_response(self, data: Any) -> str:
        """Extract the reply text from a complete response body."""
        try:
            if self._format == "openai":
                return data["choices"][0]["message"]["content"]
            return data["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelResponseError("Unexpected response format from model backend") from e

    def _parse_stream_line(self, line: str) -> tuple[str, bool]:
        """Return (text fragment, done) for one line of a streamed body."""
        if self._format == "openai":
            if not line.startswith("data:"):
                return "", False
            payload = line[len("data:"):].strip()
            if payload == "[DONE]":
                return "", True
            data = json.loads(payload)
            choice = data["choices"][0]
            return choice.get("delta", {}).get("content") or "", choice.get("finish_reason") is not None

        data = json.loads(line)
        if "error" in data:
            raise ModelResponseError(f"Model backend reported: {data['error']}")
        return data.get("message", {}).get("content", ""), bool(data.get("done"))

    def _translate(self, e: httpx.HTTPError) -> ModelError:
        if isinstance(e, httpx.TimeoutException):
            return ModelConnectionError(f"Model backend timed out after {self._timeout}s")
        if isinstance(e, httpx.HTTPStatusError):
            return ModelStatusError(
                f"Model backend returned HTTP {e.response.status_code}",
                e.response.status_code,
            )
        return ModelConnectionError(f"Cannot connect to model backend at {self._base_url}")

    async def complete(
        self, messages: Sequence[Message], *, model: str, temperature: float
    ) -> str:
        url, body = self._build_request(messages, model, temperature, stream=False)
        logger.debug("model call url=%s model=%s messages=%d", url, model, len(messages))

        try:
            async with self._client() as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._translate(e) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ModelResponseError("Model backend returned a body that is not JSON") from e
        text = self._parse_response(data)
        logger.debug("model response len=%d", len(text))
        return text

    async def stream(
        self,
        messages: Sequence[Message],
        on_chunk: ChunkCallback,
        *,
        model: str,
        temperature: float,
    ) -> str:
        url, body = self._build_request(messages, model, temperature, stream=True)
        logger.debug("model stream url=%s model=%s messages=%d", url, model, len(messages))

        parts: list[str] = []
        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            fragment, done = self._parse_stream_line(line)
                        except (ValueError, KeyError, IndexError, TypeError) as e:
                            raise ModelResponseError(
                                "Unexpected stream format from model backend"
                            ) from e
                        if fragment:
                            parts.append(fragment)
                            on_chunk(fragment)
                        if done:
                            break
        except httpx.HTTPError as e:
            raise self._translate(e) from e

        text = "".join(parts)
        logger.debug("model stream finished len=%d chunks=%d", len(text), len(parts))
        return text

    async def list_models(self) -> list[str]:
        if self._format == "openai":
            url = f"{self._base_url}/v1/models"
        else:
            url = f"{self._base_url}/api/tags"

        try:
            async with self._client() as client:
                resp = await client.get(url, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._translate(e) from e

        try:
            data = resp.json()
            if self._format == "openai":
                return [m["id"] for m in data["data"]]
            return [m["name"] for m in data["models"]]
        except (ValueError, KeyError, TypeError) as e:
            raise ModelResponseError("Unexpected model list format from model backend") from e
