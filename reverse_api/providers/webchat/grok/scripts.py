"""
Grok page and script scraping.

Pure extractors over HTML/JS text, plus ``ScriptCache`` which persists the
two regenerable lookups (``grok.json`` and ``mapping.json``) so repeat
runs skip the script downloads.
"""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ....core.exceptions import MalformedResponseError, ProviderResponseError
from ....storage import read_model, write_model
from ...async_session import AsyncSessionManager
from ..base import between
from .models import GrokMapping, GrokMappingFile, ScriptOffsetMapping

logger = logging.getLogger("reverse_api.providers.webchat")

PROVIDER = "grok"
BASE_URL = "https://grok.com"
SCRIPT_PREFIX = "/_next/static/chunks/"
ACTION_MARKER = "anonPrivateKey"
XSID_MARKER = "880932)"
ONDEMAND_SCRIPT = "ondemand.s"
VERIFICATION_META = "grok-site-verification"
MIN_ACTIONS = 3

_SCRIPT_SRC = re.compile(r"<script\b[^>]*?\ssrc=\"([^\"]+)\"", re.IGNORECASE)
_ACTIONS = re.compile(r"createServerReference\)\(\"([a-f0-9]+)\"")
_XSID_SCRIPT = re.compile(r"\"(static/chunks/[^\"]+\.js)\"[^}]*?a\(880932\)")
_OFFSETS = re.compile(r"x\[(\d+)\]\s*,\s*16")
_SVG_PATH = re.compile(r"\"d\":\"(M[^\"]{200,})\"")


@dataclass(frozen=True)
class PageMetadata:
    scripts: list[str]
    baggage: str
    sentry_trace: str


def parse_page(html: str) -> PageMetadata:
    """Same-origin chunk scripts plus the baggage and sentry-trace meta tokens."""
    scripts = [src for src in _SCRIPT_SRC.findall(html) if src.startswith(SCRIPT_PREFIX)]
    baggage = between(html, '<meta name="baggage" content="', '"', PROVIDER)
    sentry_trace = between(html, '<meta name="sentry-trace" content="', "-", PROVIDER)
    return PageMetadata(scripts=scripts, baggage=baggage, sentry_trace=sentry_trace)


def extract_actions(script: str) -> list[str]:
    return _ACTIONS.findall(script)


def extract_xsid_script(script: str) -> str:
    match = _XSID_SCRIPT.search(script)
    if match is None:
        raise MalformedResponseError(PROVIDER, "signature script reference", script[:200])
    return match.group(1)


def extract_offsets(script: str) -> list[int]:
    return [int(n) for n in _OFFSETS.findall(script)]


def parse_verification(text: str) -> tuple[str, int]:
    """Return the verification token and the animation index it selects."""
    token = between(text, f'"name":"{VERIFICATION_META}","content":"', '"', PROVIDER)
    try:
        decoded = base64.b64decode(token)
    except binascii.Error as e:
        raise MalformedResponseError(PROVIDER, "verification token encoding", token, cause=e)
    if len(decoded) <= 5:
        raise MalformedResponseError(PROVIDER, "verification token length", token)
    return token, decoded[5] % 4


def extract_svg(text: str, anim_index: int) -> str:
    paths = _SVG_PATH.findall(text)
    if anim_index >= len(paths):
        raise MalformedResponseError(
            PROVIDER, f"animation path {anim_index} (found {len(paths)})", text[:200]
        )
    return paths[anim_index]


def signature_script_url(xsid_script: str, text: str) -> str:
    if xsid_script == ONDEMAND_SCRIPT:
        script_hash = between(text, '"ondemand.s":"', '"', PROVIDER)
        return f"https://abs.twimg.com/responsive-web/client-web/ondemand.s.{script_hash}a.js"
    return f"{BASE_URL}/_next/{xsid_script}"


class ScriptCache:
    """
    On-disk lookups shared by every handshake of one client.

    Writes go through a lock; reads hit an in-memory copy loaded lazily
    from disk. Losing either file only costs extra downloads.
    """

    def __init__(self, grok_path: Path | str, offsets_path: Path | str):
        self.grok_path = Path(grok_path)
        self.offsets_path = Path(offsets_path)
        self._mappings: list[GrokMapping] | None = None
        self._offsets: dict[str, list[int]] | None = None
        self._lock = asyncio.Lock()

    def _load_mappings(self) -> list[GrokMapping]:
        if self._mappings is None:
            stored = read_model(self.grok_path, GrokMappingFile)
            self._mappings = list(stored.root) if stored else []
        return self._mappings

    def _load_offsets(self) -> dict[str, list[int]]:
        if self._offsets is None:
            stored = read_model(self.offsets_path, ScriptOffsetMapping)
            self._offsets = dict(stored.root) if stored else {}
        return self._offsets

    def find_mapping(self, scripts: list[str]) -> GrokMapping | None:
        for mapping in self._load_mappings():
            if mapping.action_script in scripts:
                return mapping
        return None

    async def add_mapping(self, mapping: GrokMapping) -> None:
        async with self._lock:
            mappings = self._load_mappings()
            mappings.append(mapping)
            write_model(self.grok_path, GrokMappingFile(mappings))

    def get_offsets(self, script_url: str) -> list[int] | None:
        return self._load_offsets().get(script_url)

    async def put_offsets(self, script_url: str, offsets: list[int]) -> None:
        async with self._lock:
            stored = self._load_offsets()
            stored[script_url] = offsets
            write_model(self.offsets_path, ScriptOffsetMapping(stored))


async def _fetch_text(session: AsyncSessionManager, url: str) -> str:
    response = await session.get(url)
    if response.status_code != 200:
        raise ProviderResponseError(PROVIDER, response.status_code, response.text)
    return response.text


async def resolve_actions(
    session: AsyncSessionManager, scripts: list[str], cache: ScriptCache
) -> GrokMapping:
    """Server action ids and the signature script, from cache or by scanning the page scripts."""
    cached = cache.find_mapping(scripts)
    if cached is not None:
        logger.debug(f"Using cached action mapping for {cached.action_script}")
        return cached

    action_source = ""
    action_script = ""
    xsid_source = ""
    for script in scripts:
        content = await _fetch_text(session, f"{BASE_URL}{script}")
        if ACTION_MARKER in content:
            action_source = content
            action_script = script
        elif XSID_MARKER in content:
            xsid_source = content

    actions = extract_actions(action_source)
    if len(actions) < MIN_ACTIONS:
        raise MalformedResponseError(PROVIDER, f"server actions (found {len(actions)})")

    mapping = GrokMapping(
        xsid_script=extract_xsid_script(xsid_source),
        action_script=action_script,
        actions=actions,
    )
    await cache.add_mapping(mapping)
    logger.info(f"Cached action mapping for {action_script}")
    return mapping


async def resolve_offsets(
    session: AsyncSessionManager, script_url: str, cache: ScriptCache
) -> list[int]:
    cached = cache.get_offsets(script_url)
    if cached is not None:
        return cached

    offsets = extract_offsets(await _fetch_text(session, script_url))
    if len(offsets) < 4:
        raise MalformedResponseError(PROVIDER, f"token offsets in {script_url}")
    await cache.put_offsets(script_url, offsets)
    return offsets
