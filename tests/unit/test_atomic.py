"""
Tests for atomic cache persistence
"""

import pytest
from pydantic import BaseModel

from reverse_api.storage import atomic_write, read_model, write_model


class Offsets(BaseModel):
    key: list[int]
    ok: bool = True


class TestAtomicWrite:
    def test_writes_text(self, tmp_path):
        path = tmp_path / "mapping.json"

        assert atomic_write(path, '{"a": 1}') is True
        assert path.read_text() == '{"a": 1}'
        assert not (tmp_path / "mapping.json.tmp").exists()

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "grok.json"

        assert atomic_write(path, b"{}", sync=False) is True
        assert path.read_bytes() == b"{}"

    def test_replaces_existing(self, tmp_path):
        path = tmp_path / "grok.json"
        path.write_text("old")

        atomic_write(path, "new")

        assert path.read_text() == "new"

    def test_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")

        assert atomic_write(blocker / "child.json", "x") is False

    def test_failure_raises_when_asked(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(OSError):
            atomic_write(blocker / "child.json", "x", raise_errors=True)


class TestModelIO:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "offsets.json"

        assert write_model(path, Offsets(key=[1, 2, 3])) is True
        assert read_model(path, Offsets) == Offsets(key=[1, 2, 3])

    def test_missing_file(self, tmp_path):
        assert read_model(tmp_path / "missing.json", Offsets) is None

    def test_invalid_content_is_ignored(self, tmp_path):
        path = tmp_path / "offsets.json"
        path.write_text('{"key": "not-a-list"}')

        assert read_model(path, Offsets) is None
