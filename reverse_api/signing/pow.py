"""
Proof-of-work solver backed by the vendor's WASM module.

The hash itself is a black box. This module only owns the memory protocol
around the exported ``wasm_solve`` entry point:

1. reserve 16 bytes on the module's shadow stack
2. allocate and copy the challenge and the ``{salt}_{expire_at}_`` prefix
3. call ``wasm_solve(retptr, challenge_ptr, challenge_len, prefix_ptr, prefix_len, difficulty)``
4. read the i32 status at ``retptr`` and the f64 answer at ``retptr + 8``
5. release the stack reservation
"""

import asyncio
import random
import struct
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from wasmtime import Engine, FuncType, Linker, Module, Store, Trap, ValType, WasmtimeError

from ..core.exceptions import EmbeddedModuleError, UnsupportedAlgorithmError
from ..core.logging import get_logger

SUPPORTED_ALGORITHM = "DeepSeekHashV1"

_RANDOM_IMPORT = "__wbg_random_c860375d405066c3"
_LOG_IMPORT = "__wbg_log_0400000000000000"
_REQUIRED_EXPORTS = (
    "memory",
    "wasm_solve",
    "__wbindgen_add_to_stack_pointer",
    "__wbindgen_export_0",
)

logger = get_logger("reverse_api.signing.pow")


@dataclass(frozen=True)
class PowChallenge:
    """A challenge as issued by the provider."""

    algorithm: str
    challenge: str
    salt: str
    difficulty: float
    expire_at: int
    signature: str = ""
    target_path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PowChallenge":
        return cls(
            algorithm=data["algorithm"],
            challenge=data["challenge"],
            salt=data["salt"],
            difficulty=float(data["difficulty"]),
            expire_at=int(data["expire_at"]),
            signature=data.get("signature", ""),
            target_path=data.get("target_path", ""),
        )


class WasmPowSolver:
    """
    Loads the module once and answers challenges against it.

    Instantiation compiles the module, so one solver should live as long as
    the client that owns it. Calls are serialised with a thread lock because
    a wasmtime ``Store`` is not safe for concurrent use.
    """

    def __init__(self, wasm_path: str | Path | None = None, module_bytes: bytes | None = None):
        if wasm_path is None and module_bytes is None:
            raise EmbeddedModuleError("no module path or bytes given")

        self._lock = threading.Lock()
        self._engine = Engine()
        self._store = Store(self._engine)

        try:
            if module_bytes is not None:
                module = Module(self._engine, module_bytes)
            else:
                path = Path(wasm_path)
                if not path.is_file():
                    raise EmbeddedModuleError(f"module not found at {path}")
                module = Module.from_file(self._engine, str(path))

            linker = Linker(self._engine)
            linker.define_func("wbg", _RANDOM_IMPORT, FuncType([], [ValType.f64()]), random.random)
            linker.define_func(
                "wbg",
                _LOG_IMPORT,
                FuncType([ValType.i32(), ValType.i32()], []),
                self._log_from_module,
                access_caller=True,
            )
            instance = linker.instantiate(self._store, module)
        except (WasmtimeError, Trap) as e:
            raise EmbeddedModuleError(f"instantiation failed: {e}", cause=e)

        exports = instance.exports(self._store)
        missing = [name for name in _REQUIRED_EXPORTS if exports.get(name) is None]
        if missing:
            raise EmbeddedModuleError(f"missing exports: {', '.join(missing)}")

        self._memory = exports["memory"]
        self._solve = exports["wasm_solve"]
        self._stack = exports["__wbindgen_add_to_stack_pointer"]
        self._alloc = exports["__wbindgen_export_0"]

        logger.debug("PoW module loaded", source=str(wasm_path) if wasm_path else "bytes")

    @staticmethod
    def _log_from_module(caller: Any, ptr: int, length: int) -> None:
        memory = caller.get("memory")
        if memory is None:
            return
        text = bytes(memory.read(caller, ptr, ptr + length)).decode("utf-8", errors="replace")
        logger.debug("PoW module log", message=text)

    def _write_string(self, text: str) -> tuple[int, int]:
        data = text.encode("utf-8")
        ptr = self._alloc(self._store, len(data), 1)
        self._memory.write(self._store, data, ptr)
        return ptr, len(data)

    def calculate_hash(
        self,
        algorithm: str,
        challenge: str,
        salt: str,
        difficulty: float,
        expire_at: int,
    ) -> float | None:
        """Run the module. ``None`` means it found no answer."""
        if algorithm != SUPPORTED_ALGORITHM:
            raise UnsupportedAlgorithmError(algorithm)

        prefix = f"{salt}_{expire_at}_"
        with self._lock:
            try:
                retptr = self._stack(self._store, -16)
                try:
                    challenge_ptr, challenge_len = self._write_string(challenge)
                    prefix_ptr, prefix_len = self._write_string(prefix)
                    self._solve(
                        self._store,
                        retptr,
                        challenge_ptr,
                        challenge_len,
                        prefix_ptr,
                        prefix_len,
                        float(difficulty),
                    )
                    status = struct.unpack(
                        "<i", bytes(self._memory.read(self._store, retptr, retptr + 4))
                    )[0]
                    value = struct.unpack(
                        "<d", bytes(self._memory.read(self._store, retptr + 8, retptr + 16))
                    )[0]
                finally:
                    self._stack(self._store, 16)
            except (WasmtimeError, Trap, IndexError) as e:
                raise EmbeddedModuleError(f"solve failed: {e}", cause=e)

        if status == 0:
            return None
        return value

    def solve(self, material: PowChallenge) -> float | None:
        return self.calculate_hash(
            material.algorithm,
            material.challenge,
            material.salt,
            material.difficulty,
            material.expire_at,
        )

    async def solve_async(self, material: PowChallenge) -> float | None:
        """Solve on a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(self.solve, material)
