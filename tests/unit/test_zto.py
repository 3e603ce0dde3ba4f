"""
Tests for the Z.ai client
"""

import hashlib

import orjson
import pytest
from conftest import FakeResponse, sse_response

from reverse_api.core.exceptions import (
    ProviderApiError,
    ProviderResponseError,
    RetryExhaustedError,
)
from reverse_api.providers.webchat.auth import CredentialCache
from reverse_api.providers.webchat.zto import (
    TOKEN_KEY,
    ZtoWebChat,
    create_signature,
    generate_ids,
    process_thinking_content,
)


def chunk(content: str) -> str:
    return "data: " + orjson.dumps({"choices": [{"delta": {"content": content}}]}).decode()


ANSWER_STREAM = [chunk("Hi"), chunk(" there"), "", "data: [DONE]", chunk(" ignored")]


@pytest.fixture
def client(config, make_manager):
    return ZtoWebChat(config=config, session=make_manager("zto"))


class TestHelpers:
    def test_signature(self):
        body = b'{"stream":true}'

        assert create_signature(body) == hashlib.sha256(body).hexdigest()
        assert len(create_signature(b"")) == 64

    def test_generate_ids(self):
        chat_id, message_id = generate_ids(1_700_000_000_123_456_789)

        assert chat_id == "1700000000123456789-1700000000"
        assert message_id == "1700000000123456789"

    def test_process_thinking_content(self):
        raw = "<details>> first line\n> second line</details>"

        assert process_thinking_content(raw) == "first line\nsecond line"

    def test_process_plain_text(self):
        assert process_thinking_content("  plain  ") == "plain"


class TestZtoWebChat:
    @pytest.mark.asyncio
    async def test_ask(self, client, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": "guest-1"}))
        fake_session.route("POST", "/api/chat/completions", sse_response(ANSWER_STREAM))

        result = await client.ask("hello")

        assert result.response == "Hi there"
        assert result.messages == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "Hi there"},
        ]
        call = fake_session.calls("/api/chat/completions")[0]
        assert call["headers"]["Authorization"] == "Bearer guest-1"
        assert call["headers"]["X-Signature"] == hashlib.sha256(call["data"]).hexdigest()
        body = orjson.loads(call["data"])
        assert body["model"] == "GLM-4-6-API-V1"
        assert body["features"] == {"enable_thinking": False}

    @pytest.mark.asyncio
    async def test_context_is_sent(self, client, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": "guest-1"}))
        fake_session.route("POST", "/api/chat/completions", sse_response(ANSWER_STREAM))
        first = await client.ask("hello")

        answer = await client.ask_question_with_context("and then?", first.messages)

        assert answer == "Hi there"
        body = orjson.loads(fake_session.calls("/api/chat/completions")[1]["data"])
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
        assert len(fake_session.calls("/api/v1/auths/")) == 1

    @pytest.mark.asyncio
    async def test_refresh_on_401(self, client, fake_session):
        fake_session.route(
            "GET",
            "/api/v1/auths/",
            FakeResponse(200, {"token": "guest-1"}),
            FakeResponse(200, {"token": "guest-2"}),
        )
        fake_session.route(
            "POST",
            "/api/chat/completions",
            FakeResponse(401, "expired"),
            sse_response(ANSWER_STREAM),
        )

        assert await client.ask_question("hello") == "Hi there"

        calls = fake_session.calls("/api/chat/completions")
        assert [c["headers"]["Authorization"] for c in calls] == [
            "Bearer guest-1",
            "Bearer guest-2",
        ]
        assert client.cache.peek(TOKEN_KEY) == "guest-2"

    @pytest.mark.asyncio
    async def test_refresh_uses_shared_empty_cache(self, config, make_manager, fake_session):
        shared = CredentialCache()
        client = ZtoWebChat(config=config, session=make_manager("zto"), cache=shared)
        fake_session.route(
            "GET",
            "/api/v1/auths/",
            FakeResponse(200, {"token": "guest-1"}),
            FakeResponse(200, {"token": "guest-2"}),
        )
        fake_session.route(
            "POST",
            "/api/chat/completions",
            FakeResponse(401, "expired"),
            sse_response(ANSWER_STREAM),
        )

        await client.ask("hello")

        assert client.cache is shared
        assert shared.peek(TOKEN_KEY) == "guest-2"

    @pytest.mark.asyncio
    async def test_refresh_bounded(self, client, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": "guest"}))
        fake_session.route("POST", "/api/chat/completions", FakeResponse(401, "expired"))

        with pytest.raises(RetryExhaustedError):
            await client.ask("hello")
        assert len(fake_session.calls("/api/chat/completions")) == client.max_refreshes + 1

    @pytest.mark.asyncio
    async def test_empty_token(self, client, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": ""}))

        with pytest.raises(ProviderApiError) as exc_info:
            await client.acquire_token()
        assert exc_info.value.code == "empty_token"

    @pytest.mark.asyncio
    async def test_server_error(self, client, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": "guest"}))
        fake_session.route("POST", "/api/chat/completions", FakeResponse(400, "bad request"))

        with pytest.raises(ProviderResponseError) as exc_info:
            await client.ask("hello")
        assert exc_info.value.status_code == 400
