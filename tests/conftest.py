"""
Shared pytest fixtures for reverse_api tests

Includes:
    - FakeResponse / FakeSession: scripted stand-ins for curl_cffi
    - session_manager: AsyncSessionManager wired to a FakeSession
    - FakeClock for expiry tests
    - Temporary cache directories and config
"""

from pathlib import Path
from typing import Any

import orjson
import pytest

from reverse_api.core.config import ReverseApiConfig
from reverse_api.core.retry import RetryConfig, RetryStrategy
from reverse_api.providers.async_session import AsyncSessionManager


def pytest_addoption(parser):
    """Add custom pytest options"""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run end-to-end tests against the live services",
    )
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on markers and options"""
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e option to run E2E tests")
    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run slow tests")

    for item in items:
        if "e2e" in item.keywords and not config.getoption("--run-e2e"):
            item.add_marker(skip_e2e)
        if "slow" in item.keywords and not config.getoption("--run-slow"):
            item.add_marker(skip_slow)


# =============================================================================
# Fake HTTP
# =============================================================================


class FakeResponse:
    """Enough of a curl_cffi Response for the clients under test."""

    def __init__(
        self,
        status_code: int = 200,
        body: Any = b"",
        headers: dict[str, str] | None = None,
        lines: list[str | bytes] | None = None,
    ):
        if isinstance(body, (dict, list)):
            body = orjson.dumps(body)
        elif isinstance(body, str):
            body = body.encode()
        if lines is not None and not body:
            body = b"\n".join(
                line.encode() if isinstance(line, str) else line for line in lines
            )
        self.status_code = status_code
        self.content = body
        self.headers = headers or {}
        self._lines = lines
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return orjson.loads(self.content)

    async def aiter_lines(self):
        lines = self._lines if self._lines is not None else self.content.split(b"\n")
        for line in lines:
            yield line.encode() if isinstance(line, str) else line

    async def acontent(self) -> bytes:
        return self.content

    async def aclose(self) -> None:
        self.closed = True


def sse_response(lines: list[str], status_code: int = 200) -> FakeResponse:
    return FakeResponse(
        status_code,
        lines=lines,
        headers={"content-type": "text/event-stream; charset=utf-8"},
    )


class FakeCookies(dict):
    """dict with the ``update``/``items`` surface of a curl_cffi cookie jar."""


class FakeSession:
    """
    Scripted AsyncSession.

    ``route(method, fragment, *responses)`` answers requests whose URL
    contains ``fragment``. Responses are served in order; the last one
    repeats. A response may also be an exception instance, which is raised.
    """

    def __init__(self, **kwargs: Any):
        self.init_kwargs = kwargs
        self.headers: dict[str, str] = dict(kwargs.get("headers") or {})
        self.cookies = FakeCookies(kwargs.get("cookies") or {})
        self.routes: list[tuple[str, str, list[Any]]] = []
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    def route(self, method: str, fragment: str, *responses: Any) -> "FakeSession":
        self.routes.append((method.upper(), fragment, list(responses)))
        return self

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.requests.append((method, url, kwargs))
        for route_method, fragment, responses in self.routes:
            if route_method == method and fragment in url:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, BaseException):
                    raise response
                return response
        raise AssertionError(f"Unexpected request: {method} {url}")

    def calls(self, fragment: str, method: str | None = None) -> list[dict[str, Any]]:
        return [
            kw
            for m, url, kw in self.requests
            if fragment in url and (method is None or m == method)
        ]

    async def close(self) -> None:
        self.closed = True


async def no_sleep(delay: float) -> None:
    return None


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_manager(fake_session):
    """Factory for AsyncSessionManager instances backed by ``fake_session``."""

    def _make(provider_name: str = "test", max_retries: int = 2) -> AsyncSessionManager:
        return AsyncSessionManager(
            provider_name,
            retry=RetryStrategy(RetryConfig(max_retries=max_retries, initial_delay_ms=1)),
            session_factory=lambda **kw: fake_session,
            sleep=no_sleep,
        )

    return _make


@pytest.fixture
def session_manager(make_manager) -> AsyncSessionManager:
    return make_manager()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def config(cache_dir: Path) -> ReverseApiConfig:
    return ReverseApiConfig.from_dict({"cache": {"cache_dir": str(cache_dir)}})
