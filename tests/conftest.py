"""Shared fixtures for flexistream tests."""

import pytest

from flexistream.streaming.framing import encode_records


class FakeStore:
    """In-memory MessageStore that records every insert."""

    def __init__(self):
        self.rows = []

    def insert(self, chat_id, role, parts):
        self.rows.append((chat_id, role, parts))

    def roles(self):
        return [role for _, role, _ in self.rows]


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def records():
    """Encode record contents as the NDJSON bytes an upstream would send."""
    return lambda *contents: encode_records(list(contents))


@pytest.fixture
def no_user_config(monkeypatch, tmp_path):
    """Point config loading at a path with no init.py."""
    monkeypatch.setattr("flexistream.config.get_init_script_path", lambda: tmp_path / "init.py")
    return tmp_path
