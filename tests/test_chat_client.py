"""Tests for the chat backend client."""

import json

import httpx
import pytest

from common.errors import ChatErrorKind, ChatServiceError, get_user_friendly_message
from conftest import CHAT_URL, RecordingTransport, chat_ok
from llm.chat_client import (
    DEFAULT_RESPONSE,
    FALLBACK_SOURCE,
    ChatClient,
    ChatContext,
    get_fallback_response,
)


def _client(handler, **kwargs):
    recorder = RecordingTransport(handler)
    return ChatClient(CHAT_URL, transport=recorder.transport, **kwargs), recorder


def _raise(exc_type):
    def handler(request):
        raise exc_type("boom", request=request)
    return handler


class TestSendMessage:
    async def test_success(self):
        client, recorder = _client(chat_ok, model="sales-model", api_key="k")
        context = ChatContext(prospect_name="Dana", previous_messages=[{"role": "user", "content": "hi"}])

        reply = await client.send_message("What does it cost?", "s1", context)

        assert reply.response == "Great, let's get you connected with the right person."
        assert reply.session_id == "s1"
        assert reply.is_fallback is False

        request = recorder.requests[0]
        assert str(request.url) == f"{CHAT_URL}/api/chat"
        body = json.loads(request.content)
        assert body["message"] == "What does it cost?"
        assert body["sessionId"] == "s1"
        assert body["model"] == "sales-model"
        assert body["apiKey"] == "k"
        assert body["context"] == {
            "previousMessages": [{"role": "user", "content": "hi"}],
            "prospectName": "Dana",
        }

    async def test_backend_assigns_session_id(self):
        client, _ = _client(lambda r: httpx.Response(200, json={"success": True, "response": "hi", "sessionId": "new"}))
        reply = await client.send_message("hello", None)
        assert reply.session_id == "new"

    @pytest.mark.parametrize("exc_type,kind", [
        (httpx.ReadTimeout, ChatErrorKind.TIMEOUT),
        (httpx.ConnectError, ChatErrorKind.NETWORK),
    ])
    async def test_transport_failures(self, exc_type, kind):
        client, _ = _client(_raise(exc_type))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        assert info.value.kind == kind
        assert info.value.retryable is True

    async def test_http_error_carries_backend_message(self):
        client, _ = _client(lambda r: httpx.Response(500, json={"error": "Model overloaded"}))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        error = info.value
        assert error.kind == ChatErrorKind.API
        assert error.status_code == 500
        assert error.message == "Model overloaded"
        assert get_user_friendly_message(error) == "Model overloaded"

    async def test_http_error_without_json(self):
        client, _ = _client(lambda r: httpx.Response(503, text="Service Unavailable"))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        assert info.value.message == "Chat request failed with status 503"

    async def test_malformed_json(self):
        client, _ = _client(lambda r: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        assert info.value.kind == ChatErrorKind.PARSE
        assert info.value.retryable is False

    async def test_unsuccessful_body(self):
        client, _ = _client(lambda r: httpx.Response(200, json={"success": False, "error": "Quota exceeded"}))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        assert info.value.kind == ChatErrorKind.API
        assert info.value.message == "Quota exceeded"

    async def test_missing_response_field(self):
        client, _ = _client(lambda r: httpx.Response(200, json={"success": True}))
        with pytest.raises(ChatServiceError) as info:
            await client.send_message("hello", "s1")
        assert info.value.kind == ChatErrorKind.PARSE


class TestFallback:
    async def test_network_failure_degrades_to_canned_reply(self):
        client, _ = _client(_raise(httpx.ConnectError))
        reply = await client.send_with_fallback("What's the pricing?", "s1")

        assert reply.source == FALLBACK_SOURCE
        assert reply.is_fallback is True
        assert reply.response.startswith("Our pricing is customized")
        assert reply.session_id == "s1"
        assert reply.metadata == {"source": "fallback", "errorKind": "network"}

    async def test_fallback_generates_session_id(self):
        client, _ = _client(_raise(httpx.ConnectTimeout))
        reply = await client.send_with_fallback("hello", None)
        assert reply.session_id.startswith("demo_")

    async def test_api_errors_are_not_masked(self):
        client, _ = _client(lambda r: httpx.Response(400, json={"error": "Bad request"}))
        with pytest.raises(ChatServiceError):
            await client.send_with_fallback("hello", "s1")

    @pytest.mark.parametrize("message,prefix", [
        ("Can I see a demo?", "I'd love to show you"),
        ("How does it work?", "We combine AI automation"),
        ("How soon can we get started?", "Most teams are up and running"),
        ("Does it integrate with HubSpot?", "We work alongside"),
        ("Our biggest challenge is follow-up", "That's a common challenge"),
    ])
    def test_keyword_replies(self, message, prefix):
        assert get_fallback_response(message).startswith(prefix)

    def test_default_reply(self):
        assert get_fallback_response("hello there") == DEFAULT_RESPONSE
