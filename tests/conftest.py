"""
Pytest configuration and shared fixtures for the DevReload tests.
"""
import os
import signal
import socket
from pathlib import Path

import pytest

from devreload.local.config import MergedSettings
from tests.helpers import FAST_TIMINGS, server_command


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def artifact(tmp_path) -> Path:
    return tmp_path / "pack" / "package.tgz"


@pytest.fixture
def make_config(tmp_path, free_port, artifact):
    """Builds settings rooted in tmp_path, ignoring any real overrides file."""

    def _make(**overrides) -> MergedSettings:
        values = dict(FAST_TIMINGS)
        values.update(
            APP_ROOT=tmp_path,
            ARTIFACT_PATH=artifact,
            PORT=free_port,
            INSTALL_COMMAND="{python} -c pass",
            SERVER_COMMAND=server_command(),
        )
        values.update(overrides)
        return MergedSettings(overrides_path=tmp_path / "devreload.json", overrides=values)

    return _make


@pytest.fixture
def killpg_calls(monkeypatch):
    """Records every signal sent through os.killpg while still delivering it."""
    calls = []
    real_killpg = os.killpg

    def _spy(pgid, sig):
        calls.append(sig)
        real_killpg(pgid, sig)

    monkeypatch.setattr(os, "killpg", _spy)
    return calls


@pytest.fixture
def servers():
    """Collects ServerProcess handles and kills any group a test leaves behind."""
    handles = []
    yield handles
    for server in handles:
        if server.pgid is not None:
            try:
                os.killpg(server.pgid, signal.SIGKILL)
            except ProcessLookupError:
                pass
