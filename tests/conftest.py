"""Shared fixtures: clients wired to the scripted transport engine."""

from __future__ import annotations

from typing import Iterator

import pytest

from curlftp.client import FTPClient
from tests.fakes import HOST, FakeEngine


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture()
def sink() -> list[str]:
    """Collects messages sent to the client's log sink."""
    return []


@pytest.fixture()
def bare_client(engine: FakeEngine, sink: list[str]) -> Iterator[FTPClient]:
    """A client without a session, using the fake engine."""
    client = FTPClient(sink.append, engine_factory=lambda: engine)
    yield client
    client.close()


@pytest.fixture()
def client(bare_client: FTPClient) -> FTPClient:
    """A client with an FTP session to 127.0.0.1."""
    assert bare_client.init_session(HOST, 0, "user", "secret")
    return bare_client
