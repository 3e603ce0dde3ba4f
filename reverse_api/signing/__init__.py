"""
Request-authenticating material.

- keys: per-session secp256k1 keypairs and challenge signatures
- xsid: the ``x-statsig-id`` request signature
- oss: OSS v4 upload signatures
- pow: the WASM proof-of-work solver
"""

from .keys import Keypair, SignedChallenge, verify_challenge
from .oss import OssCredentials, OssObject, SignedUpload, sign_upload
from .pow import PowChallenge, WasmPowSolver
from .xsid import generate_sign, simulate_style, tohex

__all__ = [
    "Keypair",
    "OssCredentials",
    "OssObject",
    "PowChallenge",
    "SignedChallenge",
    "SignedUpload",
    "WasmPowSolver",
    "generate_sign",
    "sign_upload",
    "simulate_style",
    "tohex",
    "verify_challenge",
]
