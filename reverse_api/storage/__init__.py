"""
reverse_api storage

- Atomic writes for the regenerable on-disk caches
- Pydantic validation on read
"""

from .atomic import atomic_write, read_model, write_model

__all__ = [
    "atomic_write",
    "read_model",
    "write_model",
]
