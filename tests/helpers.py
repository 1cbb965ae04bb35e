"""Shared constants and polling helpers for the DevReload tests."""
import asyncio
import sys
import time
from pathlib import Path

import pytest

from devreload.local.supervisor.ports import is_port_in_use

TESTS_DIR = Path(__file__).parent
FAKE_SERVER = TESTS_DIR / "fake_server.py"
FAKE_INSTALLER = TESTS_DIR / "fake_installer.py"

# Short enough to keep the suite quick, long enough for a Python child to boot.
FAST_TIMINGS = {
    "RESTART_DEBOUNCE_SECONDS": 0.05,
    "GRACEFUL_SHUTDOWN_TIMEOUT": 0.3,
    "PORT_POLL_INTERVAL_SECONDS": 0.05,
    "PORT_FREE_TIMEOUT_SECONDS": 5.0,
    "WRITE_STABILITY_THRESHOLD_SECONDS": 0.2,
    "WRITE_POLL_INTERVAL_SECONDS": 0.05,
}

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX-only")


def quote(path: Path) -> str:
    """Quotes a path for a command template."""
    return f'"{path}"'


def server_command(*flags: str) -> str:
    return " ".join(["{python}", quote(FAKE_SERVER), "{port}", *flags])


async def wait_for(predicate, timeout: float = 10.0, interval: float = 0.05) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)


async def wait_until_bound(port: int, timeout: float = 10.0) -> None:
    await wait_for(lambda: is_port_in_use(port), timeout=timeout)
