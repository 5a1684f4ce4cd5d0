"""Tests for the provider adapters, with the OpenAI and Anthropic transports mocked."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from shared.llm_adapter.anthropic_provider import AnthropicProvider, convert_messages
from shared.llm_adapter.errors import TransportError, ValidationError
from shared.llm_adapter.mock_provider import REQUEST_LOG_SIZE, MockProvider
from shared.llm_adapter.models import LLMRequest, Message, ProviderName
from shared.llm_adapter.openai_provider import OpenAIProvider

from tests.conftest import make_request

_OPENAI_URL = "https://api.openai.com/v1/chat/completions"


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


def _completion(content="Hi there", model="gpt-4-turbo-preview"):
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


def _delta(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeOpenAIStream:
    def __init__(self, events, error=None):
        self._events = events
        self._error = error
        self.close = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            yield event
        if self._error is not None:
            raise self._error


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def openai_provider(openai_client):
    return OpenAIProvider(api_key="sk-test", client=openai_client)


class TestOpenAIProvider:

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="OpenAI API key"):
            OpenAIProvider(api_key="")

    @pytest.mark.asyncio
    async def test_generate_maps_response(self, openai_provider, openai_client):
        openai_client.chat.completions.create.return_value = _completion()

        response = await openai_provider.generate(
            LLMRequest(
                messages=[
                    Message(role="system", content="Be brief"),
                    Message(role="user", content="Hello"),
                ],
                max_tokens=64,
            )
        )

        assert response.content == "Hi there"
        assert response.provider is ProviderName.OPENAI
        assert response.usage.total_tokens == 15
        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4-turbo-preview"
        assert kwargs["max_tokens"] == 64
        assert kwargs["temperature"] == 0.7
        assert kwargs["stream"] is False
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hello"},
        ]

    @pytest.mark.asyncio
    async def test_request_overrides_defaults(self, openai_provider, openai_client):
        openai_client.chat.completions.create.return_value = _completion(model="gpt-3.5-turbo")
        await openai_provider.generate(make_request(model="gpt-3.5-turbo", temperature=0.0))
        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_invalid_request_skips_network(self, openai_provider, openai_client):
        with pytest.raises(ValidationError):
            await openai_provider.generate(LLMRequest(messages=[]))
        openai_client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_is_transport(self, openai_provider, openai_client):
        openai_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", _OPENAI_URL)
        )
        with pytest.raises(TransportError):
            await openai_provider.generate(make_request())

    @pytest.mark.asyncio
    async def test_bad_request_is_validation(self, openai_provider, openai_client):
        request = httpx.Request("POST", _OPENAI_URL)
        openai_client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad", response=httpx.Response(400, request=request), body=None
        )
        with pytest.raises(ValidationError):
            await openai_provider.generate(make_request())

    @pytest.mark.asyncio
    async def test_stream_yields_fragments_then_done(self, openai_provider, openai_client):
        upstream = FakeOpenAIStream(
            [_delta("Hel"), _delta(None), SimpleNamespace(choices=[]), _delta("lo")]
        )
        openai_client.chat.completions.create.return_value = upstream

        chunks = [c async for c in openai_provider.stream(make_request())]

        assert [(c.content, c.done) for c in chunks] == [
            ("Hel", False),
            ("lo", False),
            ("", True),
        ]
        upstream.close.assert_awaited_once()
        assert openai_client.chat.completions.create.await_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_closed_on_early_exit(self, openai_provider, openai_client):
        upstream = FakeOpenAIStream([_delta("a"), _delta("b")])
        openai_client.chat.completions.create.return_value = upstream

        gen = openai_provider.stream(make_request())
        first = await gen.__anext__()
        await gen.aclose()

        assert first.content == "a"
        upstream.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stream_error_mid_way(self, openai_provider, openai_client):
        upstream = FakeOpenAIStream(
            [_delta("a")],
            error=openai.APIConnectionError(request=httpx.Request("POST", _OPENAI_URL)),
        )
        openai_client.chat.completions.create.return_value = upstream

        received = []
        with pytest.raises(TransportError):
            async for chunk in openai_provider.stream(make_request()):
                received.append(chunk.content)
        assert received == ["a"]
        upstream.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aclose(self, openai_provider, openai_client):
        await openai_provider.aclose()
        openai_client.close.assert_awaited_once()

    def test_count_tokens(self, openai_provider):
        assert openai_provider.count_tokens("x" * 40) == 10


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class TrackingStream(httpx.AsyncByteStream):
    def __init__(self, lines):
        self._lines = lines
        self.closed = False

    async def __aiter__(self):
        for line in self._lines:
            yield line.encode()

    async def aclose(self):
        self.closed = True


def _sse(*events):
    lines = []
    for event in events:
        lines.append(f"event: {event['type']}\n")
        lines.append(f"data: {json.dumps(event)}\n\n")
    return lines


def _text_delta(text):
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def _anthropic(handler):
    return AnthropicProvider(api_key="ak-test", transport=httpx.MockTransport(handler))


class TestAnthropicProvider:

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="Anthropic API key"):
            AnthropicProvider(api_key="")

    def test_convert_messages_lifts_system(self):
        system, messages = convert_messages(
            [
                Message(role="system", content="Rules"),
                Message(role="user", content="Q1"),
                Message(role="assistant", content="A1"),
                Message(role="user", content="Q2"),
            ]
        )
        assert system == "Rules"
        assert messages == [
            {"role": "user", "content": "Q1"},
            {"role": "assistant", "content": "A1"},
            {"role": "user", "content": "Q2"},
        ]

    def test_convert_messages_without_system(self):
        system, _ = convert_messages([Message(role="user", content="Q")])
        assert system is None

    @pytest.mark.asyncio
    async def test_generate(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "claude-3-5-sonnet-20241022",
                    "content": [
                        {"type": "text", "text": "Hello"},
                        {"type": "tool_use", "id": "x"},
                        {"type": "text", "text": "world"},
                    ],
                    "usage": {"input_tokens": 9, "output_tokens": 4},
                },
            )

        provider = _anthropic(handler)
        response = await provider.generate(
            LLMRequest(
                messages=[
                    Message(role="system", content="Rules"),
                    Message(role="user", content="Hi"),
                ]
            )
        )

        assert response.content == "Hello\nworld"
        assert response.provider is ProviderName.ANTHROPIC
        assert response.usage.prompt_tokens == 9
        assert response.usage.total_tokens == 13
        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["headers"]["x-api-key"] == "ak-test"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["system"] == "Rules"
        assert seen["body"]["max_tokens"] == 8192
        assert seen["body"]["temperature"] == 0.7
        assert "stream" not in seen["body"]
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_server_error_is_transport(self):
        provider = _anthropic(lambda request: httpx.Response(529, json={"error": "overloaded"}))
        with pytest.raises(TransportError):
            await provider.generate(make_request())

    @pytest.mark.asyncio
    async def test_client_error_is_validation(self):
        provider = _anthropic(lambda request: httpx.Response(400, json={"error": "bad"}))
        with pytest.raises(ValidationError):
            await provider.generate(make_request())

    @pytest.mark.asyncio
    async def test_network_error_is_transport(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            await _anthropic(handler).generate(make_request())

    @pytest.mark.asyncio
    async def test_stream(self):
        body = TrackingStream(
            _sse(
                {"type": "message_start", "message": {}},
                _text_delta("Hel"),
                {"type": "content_block_delta", "delta": {"type": "input_json_delta"}},
                _text_delta("lo"),
                {"type": "message_stop"},
            )
        )
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, stream=body
            )

        chunks = [c async for c in _anthropic(handler).stream(make_request())]

        assert [(c.content, c.done) for c in chunks] == [
            ("Hel", False),
            ("lo", False),
            ("", True),
        ]
        assert seen["body"]["stream"] is True
        assert body.closed

    @pytest.mark.asyncio
    async def test_stream_error_event(self):
        body = TrackingStream(
            _sse(_text_delta("a"), {"type": "error", "error": {"message": "overloaded"}})
        )
        provider = _anthropic(lambda request: httpx.Response(200, stream=body))

        received = []
        with pytest.raises(TransportError, match="overloaded"):
            async for chunk in provider.stream(make_request()):
                received.append(chunk.content)
        assert received == ["a"]
        assert body.closed

    @pytest.mark.asyncio
    async def test_stream_closed_on_early_exit(self):
        body = TrackingStream(_sse(_text_delta("a"), _text_delta("b"), {"type": "message_stop"}))
        provider = _anthropic(lambda request: httpx.Response(200, stream=body))

        gen = provider.stream(make_request())
        first = await gen.__anext__()
        await gen.aclose()

        assert first.content == "a"
        assert body.closed


# ---------------------------------------------------------------------------
# Mock
# ---------------------------------------------------------------------------


class TestMockProvider:

    @pytest.mark.asyncio
    async def test_same_prompt_same_content(self):
        provider = MockProvider()
        first = await provider.generate(make_request("Hello"))
        second = await provider.generate(make_request("Hello"))
        assert first.content == second.content
        assert first.content.startswith("[MOCK]")
        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_request_log_is_bounded(self):
        provider = MockProvider()
        for i in range(REQUEST_LOG_SIZE + 25):
            await provider.generate(make_request(f"prompt {i}"))

        assert provider.call_count == REQUEST_LOG_SIZE + 25
        assert len(provider.requests) == REQUEST_LOG_SIZE
        assert provider.requests[-1].messages[0].content == f"prompt {REQUEST_LOG_SIZE + 24}"
