"""
Tests for the DeepSeek client
"""

import base64

import orjson
import pytest
from conftest import FakeResponse, sse_response

from reverse_api.core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderApiError,
    ProviderResponseError,
)
from reverse_api.providers.webchat.auth import CredentialCache
from reverse_api.providers.webchat.deepseek import (
    ACCESS_TOKEN_TTL_SEC,
    DeepSeekWebChat,
    build_pow_header,
    generate_cookie,
)
from reverse_api.signing.pow import PowChallenge

CHALLENGE = {
    "algorithm": "DeepSeekHashV1",
    "challenge": "c0ffee",
    "salt": "salt",
    "difficulty": 144000,
    "expire_at": 1700000000,
    "signature": "sig",
    "target_path": "/api/v0/chat/completion",
}


class FakeSolver:
    def __init__(self, answer: float | None = 42.0):
        self.answer = answer
        self.solved: list[PowChallenge] = []

    async def solve_async(self, material: PowChallenge) -> float | None:
        self.solved.append(material)
        return self.answer


def biz(data: dict, code: int = 0) -> FakeResponse:
    return FakeResponse(200, {"code": code, "msg": "", "data": {"biz_code": 0, "biz_data": data}})


DEFAULT_CHUNKS = (
    {"v": {"response": {"message_id": 2}}},
    {"p": "response/thinking_content", "v": "Let me think."},
    {"p": "response/content", "v": "Hello"},
    {"v": " World"},
    {"response_message_id": 2, "v": ""},
)


def stream_lines(chunks: tuple[dict, ...] = DEFAULT_CHUNKS) -> list[str]:
    lines = []
    for chunk in chunks:
        lines += ["data: " + orjson.dumps(chunk).decode(), ""]
    lines += ["event: close", 'data: {"click_behavior":"none"}', ""]
    return lines


@pytest.fixture
def routed(fake_session):
    fake_session.route("GET", "/users/current", biz({"token": "access-1"}))
    fake_session.route("POST", "/chat_session/create", biz({"id": "session-1"}))
    fake_session.route("POST", "/create_pow_challenge", biz({"challenge": CHALLENGE}))
    fake_session.route("POST", "/chat/completion", sse_response(stream_lines()))
    return fake_session


@pytest.fixture
def client(config, make_manager, clock):
    return DeepSeekWebChat(
        token="user-token",
        config=config,
        session=make_manager("deepseek"),
        cache=CredentialCache(clock),
        solver=FakeSolver(),
    )


class TestHelpers:
    def test_pow_header(self):
        header = build_pow_header(PowChallenge.from_dict(CHALLENGE), 42.0, "/api/v0/x")
        decoded = orjson.loads(base64.b64decode(header))

        assert decoded == {
            "algorithm": "DeepSeekHashV1",
            "challenge": "c0ffee",
            "salt": "salt",
            "answer": 42,
            "signature": "sig",
            "target_path": "/api/v0/x",
        }

    def test_pow_header_without_answer(self):
        header = build_pow_header(PowChallenge.from_dict(CHALLENGE), None, "/p")

        assert orjson.loads(base64.b64decode(header))["answer"] is None

    def test_cookie_shape(self):
        cookie = generate_cookie(now=1700000000.5)

        assert "intercom-HWWAFSESTIME=1700000000500" in cookie
        assert "HWWAFSESID=" in cookie


class TestDeepSeekWebChat:
    def test_requires_token(self, config):
        with pytest.raises(ConfigurationError):
            DeepSeekWebChat(config=config)

    def test_token_from_config(self, config):
        config.credentials.deepseek_token = "from-config"

        assert DeepSeekWebChat(config=config).token == "from-config"

    @pytest.mark.asyncio
    async def test_ask(self, client, routed):
        result = await client.ask("hi", thinking_enabled=True)

        assert result.response == "Hello World"
        assert result.thinking == "Let me think."
        assert result.extra_data.session_id == "session-1"
        assert result.extra_data.message_id == "2"

        call = routed.calls("/chat/completion")[0]
        assert call["headers"]["Authorization"] == "Bearer access-1"
        assert call["headers"]["X-Ds-Pow-Response"]
        payload = orjson.loads(call["data"])
        assert payload["chat_session_id"] == "session-1"
        assert payload["parent_message_id"] is None
        assert payload["thinking_enabled"] is True

    @pytest.mark.asyncio
    async def test_path_carries_over_to_bare_chunks(self, client, routed):
        routed.routes = [r for r in routed.routes if r[1] != "/chat/completion"]
        chunks = (
            {"p": "response/thinking_content", "v": "Let"},
            {"v": " me"},
            {"v": " think."},
            {"p": "response/content", "v": "Hello"},
            {"v": " World"},
            {"p": "response/status", "v": "FINISHED"},
        )
        routed.route("POST", "/chat/completion", sse_response(stream_lines(chunks)))

        result = await client.ask("hi", thinking_enabled=True)

        assert result.thinking == "Let me think."
        assert result.response == "Hello World"

    @pytest.mark.asyncio
    async def test_continuation(self, client, routed):
        result = await client.ask("again", extra_data={"session_id": "s-9", "message_id": "4"})

        assert not routed.calls("/chat_session/create")
        payload = orjson.loads(routed.calls("/chat/completion")[0]["data"])
        assert payload["chat_session_id"] == "s-9"
        assert payload["parent_message_id"] == "4"
        assert result.extra_data.session_id == "s-9"

    @pytest.mark.asyncio
    async def test_access_token_cached(self, client, routed, clock):
        await client.ask("one")
        await client.ask("two")
        assert len(routed.calls("/users/current")) == 1

        clock.advance(ACCESS_TOKEN_TTL_SEC + 1)
        await client.ask("three")
        assert len(routed.calls("/users/current")) == 2

    @pytest.mark.asyncio
    async def test_fresh_challenge_per_turn(self, client, routed):
        await client.ask("one")
        await client.ask("two")

        assert len(client.solver.solved) == 2
        assert client.solver.solved[0].challenge == "c0ffee"

    @pytest.mark.asyncio
    async def test_ask_question(self, client, routed):
        assert await client.ask_question("hi") == "Hello World"

    @pytest.mark.asyncio
    async def test_api_error_code(self, client, fake_session):
        fake_session.route(
            "GET",
            "/users/current",
            FakeResponse(200, {"code": 40003, "msg": "INVALID_TOKEN", "data": None}),
        )

        with pytest.raises(ProviderApiError) as exc_info:
            await client.ask("hi")
        assert exc_info.value.code == 40003

    @pytest.mark.asyncio
    async def test_missing_biz_data(self, client, fake_session):
        fake_session.route("GET", "/users/current", biz({}))

        with pytest.raises(MalformedResponseError):
            await client.ask("hi")

    @pytest.mark.asyncio
    async def test_non_stream_answer(self, client, routed):
        routed.routes = [r for r in routed.routes if r[1] != "/chat/completion"]
        routed.route(
            "POST",
            "/chat/completion",
            FakeResponse(
                200,
                {"code": 40300, "msg": "MISSING_HEADER"},
                headers={"content-type": "application/json"},
            ),
        )

        with pytest.raises(ProviderResponseError) as exc_info:
            await client.ask("hi")
        assert "MISSING_HEADER" in exc_info.value.details["response"]
