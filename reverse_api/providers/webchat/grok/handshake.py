"""
Grok anonymous handshake
========================

The "c-requests" that precede a conversation, modelled as a state machine:

    PUBLIC_KEY -> CHALLENGE -> VERIFICATION -> COMPLETE

- PUBLIC_KEY: upload the session public key, receive the anonymous user id
- CHALLENGE: receive challenge bytes and sign them with the session key
- VERIFICATION: receive the verification token and the SVG geometry, then
  resolve the token offsets from the signature script

Resuming a conversation restores the anonymous user id and key and starts
at CHALLENGE. Every state field is write-once; steps run out of order raise
``HandshakeStateError``.
"""

import logging
import uuid
from enum import IntEnum
from typing import Any

import orjson
from curl_cffi import CurlMime

from ....core.exceptions import (
    HandshakeStateError,
    MalformedResponseError,
    PolicyRejectionError,
    ProviderResponseError,
)
from ....signing.keys import Keypair, SignedChallenge
from ....signing.xsid import generate_sign
from ...async_session import AsyncSessionManager
from ..base import between
from .scripts import (
    BASE_URL,
    PROVIDER,
    ScriptCache,
    extract_svg,
    parse_verification,
    resolve_offsets,
    signature_script_url,
)

logger = logging.getLogger("reverse_api.providers.webchat")

C_REQUEST_URL = f"{BASE_URL}/c"
ANTI_BOT_MARKER = "rejected by anti-bot rules"
CHALLENGE_START = "3a6f38362c"
CHALLENGE_END = "313a"
NEXT_ROUTER_STATE_TREE = (
    "%5B%22%22%2C%7B%22children%22%3A%5B%22c%22%2C%7B%22children%22%3A%5B%5B%22slug%22"
    "%2C%22%22%2C%22oc%22%5D%2C%7B%22children%22%3A%5B%22__PAGE__%22%2C%7B%7D%2Cnull%2C"
    "null%5D%7D%2Cnull%2Cnull%5D%7D%2Cnull%2Cnull%5D%7D%2Cnull%2Cnull%2Ctrue%5D"
)


class HandshakeStep(IntEnum):
    PUBLIC_KEY = 0
    CHALLENGE = 1
    VERIFICATION = 2
    COMPLETE = 3


def sentry_header(trace: str) -> str:
    return f"{trace}-{uuid.uuid4().hex[:16]}-0"


def extract_challenge(body: bytes) -> bytes:
    """Challenge bytes sit between two fixed markers in the raw flight payload."""
    hexed = body.hex()
    start = hexed.find(CHALLENGE_START)
    if start < 0:
        raise MalformedResponseError(PROVIDER, "challenge start marker", hexed[:200])
    start += len(CHALLENGE_START)
    end = hexed.find(CHALLENGE_END, start)
    if end < 0:
        raise MalformedResponseError(PROVIDER, "challenge end marker", hexed[start : start + 200])
    try:
        return bytes.fromhex(hexed[start:end])
    except ValueError as e:
        raise MalformedResponseError(PROVIDER, "challenge bytes", hexed[start:end][:200], cause=e)


class HandshakeState:
    """Write-once handshake fields plus the current step."""

    _FIELDS = (
        "anon_user_id",
        "challenge_response",
        "verification_token",
        "animation_index",
        "curve_geometry",
        "numeric_offsets",
    )

    def __init__(self, step: HandshakeStep = HandshakeStep.PUBLIC_KEY):
        self.step = step
        self.anon_user_id: str | None = None
        self.challenge_response: SignedChallenge | None = None
        self.verification_token: str | None = None
        self.animation_index: int | None = None
        self.curve_geometry: str | None = None
        self.numeric_offsets: list[int] | None = None

    def set(self, name: str, value: Any) -> None:
        if name not in self._FIELDS:
            raise AttributeError(name)
        if getattr(self, name) is not None:
            raise HandshakeStateError(self.step.name, f"rewrite of {name}")
        setattr(self, name, value)

    def expect(self, step: HandshakeStep) -> None:
        if self.step != step:
            raise HandshakeStateError(self.step.name, step.name)

    def advance(self, from_step: HandshakeStep) -> None:
        self.expect(from_step)
        self.step = HandshakeStep(from_step + 1)

    @property
    def is_complete(self) -> bool:
        return self.step == HandshakeStep.COMPLETE


class GrokHandshake:
    """
    One handshake session: owns the keypair and the state machine.

    Args:
        session: Transport shared with the client
        keypair: Session keypair (fresh, or restored when resuming)
        baggage: ``baggage`` meta token from the landing page
        sentry_trace: trace id from the ``sentry-trace`` meta token
        xsid_script: signature script reference
        cache: Script offset cache
        anon_user_id: Set when resuming; the handshake then starts at CHALLENGE
    """

    def __init__(
        self,
        session: AsyncSessionManager,
        keypair: Keypair,
        baggage: str,
        sentry_trace: str,
        xsid_script: str,
        cache: ScriptCache,
        anon_user_id: str | None = None,
    ):
        self.session = session
        self.keypair = keypair
        self.baggage = baggage
        self.sentry_trace = sentry_trace
        self.xsid_script = xsid_script
        self.cache = cache
        if anon_user_id is None:
            self.state = HandshakeState()
        else:
            self.state = HandshakeState(HandshakeStep.CHALLENGE)
            self.state.set("anon_user_id", anon_user_id)

    def _headers(self, action: str) -> dict[str, str]:
        return {
            "accept": "text/x-component",
            "baggage": self.baggage,
            "next-action": action,
            "next-router-state-tree": NEXT_ROUTER_STATE_TREE,
            "sentry-trace": sentry_header(self.sentry_trace),
        }

    async def _post(self, headers: dict[str, str], **kwargs: Any) -> Any:
        response = await self.session.post(C_REQUEST_URL, headers=headers, **kwargs)
        if ANTI_BOT_MARKER in response.text:
            raise PolicyRejectionError(PROVIDER, response.text)
        if response.status_code != 200:
            raise ProviderResponseError(PROVIDER, response.status_code, response.text)
        return response

    def _body(self) -> bytes:
        payload: dict[str, Any] = {"anonUserId": self.state.anon_user_id}
        if self.state.challenge_response is not None:
            payload.update(self.state.challenge_response.to_dict())
        return orjson.dumps([payload])

    async def submit_public_key(self, action: str) -> str:
        self.state.expect(HandshakeStep.PUBLIC_KEY)
        mp = CurlMime()
        mp.addpart(
            name="1",
            content_type="application/octet-stream",
            filename="blob",
            data=self.keypair.public_key,
        )
        mp.addpart(name="0", data=b'[{"userPublicKey":"$o1"}]')
        try:
            response = await self._post(headers=self._headers(action), multipart=mp)
        finally:
            mp.close()

        anon_user_id = between(response.text, '{"anonUserId":"', '"', PROVIDER)
        self.state.set("anon_user_id", anon_user_id)
        self.state.advance(HandshakeStep.PUBLIC_KEY)
        logger.debug("Handshake: anonymous user registered")
        return anon_user_id

    async def solve_challenge(self, action: str) -> SignedChallenge:
        self.state.expect(HandshakeStep.CHALLENGE)
        headers = {**self._headers(action), "content-type": "text/plain;charset=UTF-8"}
        response = await self._post(headers=headers, data=self._body())

        signed = self.keypair.sign_challenge(extract_challenge(response.content))
        self.state.set("challenge_response", signed)
        self.state.advance(HandshakeStep.CHALLENGE)
        logger.debug("Handshake: challenge signed")
        return signed

    async def fetch_verification(self, action: str) -> None:
        self.state.expect(HandshakeStep.VERIFICATION)
        headers = {**self._headers(action), "content-type": "text/plain;charset=UTF-8"}
        response = await self._post(headers=headers, data=self._body())
        text = response.text

        token, anim_index = parse_verification(text)
        svg = extract_svg(text, anim_index)
        script_url = signature_script_url(self.xsid_script, text)
        offsets = await resolve_offsets(self.session, script_url, self.cache)

        self.state.set("verification_token", token)
        self.state.set("animation_index", anim_index)
        self.state.set("curve_geometry", svg)
        self.state.set("numeric_offsets", offsets)
        self.state.advance(HandshakeStep.VERIFICATION)
        logger.debug(f"Handshake complete (animation {anim_index})")

    async def run(self, actions: list[str]) -> None:
        """Run the remaining steps, taking each step's action id by its index."""
        if len(actions) < 3:
            raise MalformedResponseError(PROVIDER, f"server actions (found {len(actions)})")
        if self.state.step == HandshakeStep.PUBLIC_KEY:
            await self.submit_public_key(actions[0])
        await self.solve_challenge(actions[1])
        await self.fetch_verification(actions[2])

    def sign(self, path: str, method: str = "POST") -> str:
        """A fresh ``x-statsig-id`` for one request; requires a completed handshake."""
        if not self.state.is_complete:
            raise HandshakeStateError(self.state.step.name, "sign")
        return generate_sign(
            path,
            method,
            self.state.verification_token,
            self.state.curve_geometry,
            self.state.numeric_offsets,
        )
