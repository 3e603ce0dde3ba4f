"""
Atomic Write Operations
=======================

Persistence for the small on-disk caches (script offsets, action mappings).

Pattern:
1. Write to temporary file {name}.tmp
2. Flush and sync to disk
3. Atomic rename to final path

A reader therefore sees either the old file or the complete new one.
The caches are regenerable, so read failures degrade to "missing".
"""

import logging
import os
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger("reverse_api.storage.atomic")

T = TypeVar("T", bound=BaseModel)


def atomic_write(
    path: Path | str,
    content: str | bytes,
    encoding: str = "utf-8",
    sync: bool = True,
    raise_errors: bool = False,
) -> bool:
    """
    Write content to file atomically.

    Returns:
        True if successful, False if the write failed (logged).
        With ``raise_errors`` the OSError is re-raised after cleanup instead.
    """
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        data = content if isinstance(content, bytes) else content.encode(encoding)
        with open(os.fspath(tmp_path), "wb") as f:
            f.write(data)
            if sync:
                f.flush()
                os.fsync(f.fileno())

        tmp_path.replace(path)
        return True

    except OSError as e:
        logger.error(f"Atomic write failed for {path}: {e}")
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        if raise_errors:
            raise
        return False


def write_model(path: Path | str, model: BaseModel) -> bool:
    """Write a Pydantic model as indented JSON, atomically."""
    return atomic_write(path, model.model_dump_json(indent=2))


def read_model(path: Path | str, model_class: type[T]) -> T | None:
    """Read and validate a Pydantic model. Missing or invalid files yield None."""
    path = Path(path)
    if not path.exists():
        return None

    try:
        return model_class.model_validate_json(path.read_bytes())
    except (OSError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable cache file {path}: {e}")
        return None
