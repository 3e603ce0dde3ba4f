"""
Tests for the provider registry
"""

import pytest
from conftest import FakeResponse, sse_response

from reverse_api.core.exceptions import ProviderNotFoundError
from reverse_api.providers import get_provider as exported_get_provider
from reverse_api.providers.webchat import (
    DeepSeekWebChat,
    GrokWebChat,
    QwenWebChat,
    ZtoWebChat,
    ask_once,
    available_providers,
    get_provider,
)
from reverse_api.providers.webchat.auth import CredentialCache


class TestRegistry:
    def test_available(self):
        assert available_providers() == ["deepseek", "grok", "qwen", "zto"]

    def test_get_provider(self, config):
        assert isinstance(get_provider("grok", config=config), GrokWebChat)
        assert isinstance(get_provider("ZTO", config=config), ZtoWebChat)
        assert isinstance(get_provider("deepseek", token="t", config=config), DeepSeekWebChat)
        assert isinstance(get_provider("qwen", token="t", config=config), QwenWebChat)

    def test_exported_from_providers(self):
        assert exported_get_provider is get_provider

    def test_unknown(self):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            get_provider("bard")
        assert exc_info.value.details["available"] == ["deepseek", "grok", "qwen", "zto"]

    @pytest.mark.parametrize(
        "name,kwargs",
        [("grok", {}), ("zto", {}), ("deepseek", {"token": "t"}), ("qwen", {"token": "t"})],
    )
    def test_keeps_empty_cache_passed_in(self, config, name, kwargs):
        shared = CredentialCache()

        provider = get_provider(name, config=config, cache=shared, **kwargs)

        assert len(shared) == 0
        assert provider.cache is shared

    def test_instances_are_independent(self, config):
        first = get_provider("zto", config=config)
        second = get_provider("zto", config=config)

        assert first.cache is not second.cache
        assert first.session is not second.session


class TestAskOnce:
    @pytest.mark.asyncio
    async def test_closes_session(self, config, make_manager, fake_session):
        fake_session.route("GET", "/api/v1/auths/", FakeResponse(200, {"token": "guest"}))
        fake_session.route(
            "POST", "/api/chat/completions", sse_response(['data: {"choices": []}', "data: [DONE]"])
        )

        result = await ask_once("zto", "hi", config=config, session=make_manager("zto"))

        assert result.response == ""
        assert fake_session.closed is True
