"""Tests for textquest.llm — HttpModelClient."""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from textquest.llm import (
    HttpModelClient,
    ModelConnectionError,
    ModelError,
    ModelResponseError,
    ModelStatusError,
)
from textquest.models import Message

MESSAGES = [
    Message(role="system", content="You are the game master."),
    Message(role="user", content="Look around."),
]


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def _ndjson(*objs) -> bytes:
    return "".join(json.dumps(o) + "\n" for o in objs).encode()


# ---------------------------------------------------------------------------
# Ollama format: complete
# ---------------------------------------------------------------------------

class TestOllamaComplete:
    @pytest.fixture
    def client(self) -> HttpModelClient:
        return HttpModelClient("http://localhost:11434")

    async def test_happy_path(self, client: HttpModelClient) -> None:
        body = {"message": {"role": "assistant", "content": "A dark cave."}, "done": True}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.complete(MESSAGES, model="mistral", temperature=0.5)
        assert result == "A dark cave."

    async def test_posts_to_chat_endpoint(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "ok"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(MESSAGES, model="mistral", temperature=0.5)
        assert mock_post.call_args[0][0] == "http://localhost:11434/api/chat"

    async def test_sends_full_conversation(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "ok"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(MESSAGES, model="llama3", temperature=0.2)
        sent = mock_post.call_args.kwargs["json"]
        assert sent["model"] == "llama3"
        assert sent["stream"] is False
        assert sent["options"] == {"temperature": 0.2}
        assert sent["messages"] == [
            {"role": "system", "content": "You are the game master."},
            {"role": "user", "content": "Look around."},
        ]

    async def test_no_auth_header_without_key(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "ok"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(MESSAGES, model="m", temperature=0.5)
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    async def test_bearer_token_sent_when_api_key_set(self) -> None:
        client = HttpModelClient("http://localhost:11434", api_key="secret")
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "ok"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(MESSAGES, model="m", temperature=0.5)
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_trailing_slash_stripped_from_url(self) -> None:
        client = HttpModelClient("http://localhost:11434/")
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "ok"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(MESSAGES, model="m", temperature=0.5)
        assert mock_post.call_args[0][0] == "http://localhost:11434/api/chat"

    async def test_connect_error(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelConnectionError, match="Cannot connect"):
                await client.complete(MESSAGES, model="m", temperature=0.5)

    async def test_timeout(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelConnectionError, match="timed out"):
                await client.complete(MESSAGES, model="m", temperature=0.5)

    async def test_http_error_status(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelStatusError, match="HTTP 503") as excinfo:
                await client.complete(MESSAGES, model="m", temperature=0.5)
        assert excinfo.value.status_code == 503

    async def test_malformed_body(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"unexpected": "format"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelResponseError, match="Unexpected response format"):
                await client.complete(MESSAGES, model="m", temperature=0.5)

    async def test_body_not_json(self, client: HttpModelClient) -> None:
        resp = _mock_response(None)
        resp.json.side_effect = json.JSONDecodeError("bad", "doc", 0)
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(ModelResponseError):
                await client.complete(MESSAGES, model="m", temperature=0.5)

    async def test_all_failures_are_model_errors(self, client: HttpModelClient) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelError):
                await client.complete(MESSAGES, model="m", temperature=0.5)


# ---------------------------------------------------------------------------
# Ollama format: streaming
# ---------------------------------------------------------------------------

class TestOllamaStream:
    async def test_chunks_delivered_in_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=_ndjson(
                {"message": {"content": "You are "}, "done": False},
                {"message": {"content": "in a hall."}, "done": False},
                {"message": {"content": ""}, "done": True, "eval_count": 4},
            ))

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        chunks: list[str] = []
        result = await client.stream(MESSAGES, chunks.append, model="m", temperature=0.5)
        assert chunks == ["You are ", "in a hall."]
        assert result == "You are in a hall."

    async def test_error_line_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_ndjson({"error": "model 'x' not found"}))

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        with pytest.raises(ModelResponseError, match="not found"):
            await client.stream(MESSAGES, lambda c: None, model="x", temperature=0.5)

    async def test_garbage_line_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>\n")

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        with pytest.raises(ModelResponseError):
            await client.stream(MESSAGES, lambda c: None, model="m", temperature=0.5)

    async def test_bad_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, content=b"not found")

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        with pytest.raises(ModelStatusError, match="HTTP 404"):
            await client.stream(MESSAGES, lambda c: None, model="m", temperature=0.5)

    async def test_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        with pytest.raises(ModelConnectionError):
            await client.stream(MESSAGES, lambda c: None, model="m", temperature=0.5)


# ---------------------------------------------------------------------------
# OpenAI format
# ---------------------------------------------------------------------------

class TestOpenAI:
    async def test_complete_posts_to_chat_completions(self) -> None:
        client = HttpModelClient("http://localhost:8080", provider_format="openai")
        body = {"choices": [{"message": {"role": "assistant", "content": "A stormy night."}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.complete(MESSAGES, model="gpt", temperature=0.9)
        assert result == "A stormy night."
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"
        sent = mock_post.call_args.kwargs["json"]
        assert sent["temperature"] == 0.9
        assert sent["model"] == "gpt"

    async def test_ollama_shaped_body_rejected(self) -> None:
        client = HttpModelClient("http://localhost:8080", provider_format="openai")
        mock_post = AsyncMock(return_value=_mock_response({"message": {"content": "x"}}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelResponseError):
                await client.complete(MESSAGES, model="gpt", temperature=0.5)

    async def test_sse_stream(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            lines = [
                'data: {"choices": [{"delta": {"role": "assistant"}, "finish_reason": null}]}',
                "",
                'data: {"choices": [{"delta": {"content": "Hello"}, "finish_reason": null}]}',
                ": keep-alive",
                'data: {"choices": [{"delta": {"content": " there"}, "finish_reason": null}]}',
                "data: [DONE]",
            ]
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode())

        client = HttpModelClient("http://oai", provider_format="openai", transport=_transport(handler))
        chunks: list[str] = []
        result = await client.stream(MESSAGES, chunks.append, model="gpt", temperature=0.5)
        assert chunks == ["Hello", " there"]
        assert result == "Hello there"

    def test_unknown_format_rejected(self) -> None:
        with pytest.raises(ValueError):
            HttpModelClient("http://x", provider_format="koboldcpp")


# ---------------------------------------------------------------------------
# Model listing
# ---------------------------------------------------------------------------

class TestListModels:
    async def test_ollama_tags(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "mistral"}, {"name": "llama3"}]})

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        assert await client.list_models() == ["mistral", "llama3"]

    async def test_openai_models(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/models"
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})

        client = HttpModelClient("http://oai", provider_format="openai", transport=_transport(handler))
        assert await client.list_models() == ["gpt-4o"]

    async def test_bad_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"nope": []})

        client = HttpModelClient("http://ollama", transport=_transport(handler))
        with pytest.raises(ModelResponseError):
            await client.list_models()
