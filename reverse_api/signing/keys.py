"""
Session keypairs for anonymous handshakes.

A fresh secp256k1 keypair is generated per conversation session. The
private scalar is 32 bytes, the public key is the 33-byte compressed point.
Challenges are signed as ECDSA over SHA-256 and serialised compact
(``r || s``, low-S), matching what the browser client sends.
"""

import base64
import binascii
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from ..core.exceptions import SigningError

PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_SIZE = 33

# secp256k1 group order
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


@dataclass(frozen=True)
class SignedChallenge:
    """Challenge bytes and their signature, both base64 encoded."""

    challenge: str
    signature: str

    def to_dict(self) -> dict[str, str]:
        return {"challenge": self.challenge, "signature": self.signature}


@dataclass(frozen=True)
class Keypair:
    private_key: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def generate(cls) -> "Keypair":
        return cls.from_private_key(_private_bytes(ec.generate_private_key(ec.SECP256K1())))

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "Keypair":
        if len(private_key) != PRIVATE_KEY_SIZE:
            raise SigningError(
                f"Private key must be {PRIVATE_KEY_SIZE} bytes",
                details={"length": len(private_key)},
                recoverable=False,
            )
        key = _load_private(private_key)
        public = key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )
        return cls(private_key=private_key, public_key=public)

    @classmethod
    def from_base64(cls, private_key_b64: str) -> "Keypair":
        try:
            raw = base64.b64decode(private_key_b64, validate=True)
        except binascii.Error as e:
            raise SigningError("Private key is not valid base64", cause=e, recoverable=False)
        return cls.from_private_key(raw)

    @property
    def private_key_b64(self) -> str:
        return base64.b64encode(self.private_key).decode("ascii")

    def sign_challenge(self, challenge: bytes) -> SignedChallenge:
        """Sign ``challenge`` (hashed with SHA-256) and return both parts base64 encoded."""
        der = _load_private(self.private_key).sign(challenge, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > CURVE_ORDER // 2:
            s = CURVE_ORDER - s
        compact = r.to_bytes(32, "big") + s.to_bytes(32, "big")
        return SignedChallenge(
            challenge=base64.b64encode(challenge).decode("ascii"),
            signature=base64.b64encode(compact).decode("ascii"),
        )


def verify_challenge(public_key: bytes, signed: SignedChallenge) -> bool:
    """Check a compact signature against a compressed public key."""
    compact = base64.b64decode(signed.signature)
    if len(compact) != 64:
        return False
    der = encode_dss_signature(
        int.from_bytes(compact[:32], "big"), int.from_bytes(compact[32:], "big")
    )
    key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)
    try:
        key.verify(der, base64.b64decode(signed.challenge), ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def _load_private(private_key: bytes) -> ec.EllipticCurvePrivateKey:
    value = int.from_bytes(private_key, "big")
    if not 0 < value < CURVE_ORDER:
        raise SigningError("Private key is outside the curve order", recoverable=False)
    return ec.derive_private_key(value, ec.SECP256K1())


def _private_bytes(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_numbers().private_value.to_bytes(PRIVATE_KEY_SIZE, "big")
