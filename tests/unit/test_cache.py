"""
Tests for the credential cache
"""

import asyncio

import pytest

from reverse_api.providers.webchat.auth import CachedCredential, CredentialCache


class TestCachedCredential:
    def test_never_expires(self):
        cred = CachedCredential("token")

        assert cred.is_expired(1e12) is False
        assert cred.remaining_sec(0) is None

    def test_expiry(self):
        cred = CachedCredential("token", expires_at=100.0)

        assert cred.is_expired(99.0) is False
        assert cred.is_expired(100.0) is True
        assert cred.remaining_sec(40.0) == 60
        assert cred.remaining_sec(400.0) == 0


class TestCredentialCache:
    @pytest.mark.asyncio
    async def test_fetch_once(self, clock):
        cache = CredentialCache(clock)
        fetches = []

        async def fetch():
            fetches.append(1)
            return "tok"

        assert await cache.get_or_fetch("zto:anon", fetch) == "tok"
        assert await cache.get_or_fetch("zto:anon", fetch) == "tok"
        assert len(fetches) == 1

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, clock):
        cache = CredentialCache(clock)
        await cache.put("session", "s1", ttl=600)

        assert cache.peek("session") == "s1"
        clock.advance(601)
        assert cache.peek("session") is None
        assert "session" not in cache
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self, clock):
        cache = CredentialCache(clock)
        values = iter(["first", "second"])

        async def fetch():
            return next(values)

        assert await cache.get_or_fetch("k", fetch, ttl=10) == "first"
        clock.advance(11)
        assert await cache.get_or_fetch("k", fetch, ttl=10) == "second"

    @pytest.mark.asyncio
    async def test_invalidate(self, clock):
        cache = CredentialCache(clock)
        await cache.put("k", "v")

        assert await cache.invalidate("k") is True
        assert await cache.invalidate("k") is False
        assert cache.peek("k") is None

    @pytest.mark.asyncio
    async def test_concurrent_misses_fetch_once(self, clock):
        cache = CredentialCache(clock)
        fetches = []

        async def fetch():
            fetches.append(1)
            await asyncio.sleep(0)
            return "tok"

        results = await asyncio.gather(*(cache.get_or_fetch("k", fetch) for _ in range(5)))

        assert results == ["tok"] * 5
        assert len(fetches) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_not_cached(self, clock):
        cache = CredentialCache(clock)

        async def broken():
            raise RuntimeError("network down")

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", broken)
        assert "k" not in cache
