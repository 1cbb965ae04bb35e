"""
Errors raised by the restart cycle.

Everything derives from `ReloadError`. The restart cycle logs these as plain
diagnostics; any other exception is logged with its traceback.
"""
from pathlib import Path
from typing import Optional, Union


class ReloadError(Exception):
    """Base class for all supervisor failures."""


class MissingArtifactError(ReloadError):
    """The artifact does not exist at install time."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"{path.name} not found at {path}")


class InstallFailedError(ReloadError):
    """The install command exited non-zero or could not be spawned."""

    def __init__(self, returncode: Optional[int] = None, cause: Optional[BaseException] = None):
        self.returncode = returncode
        self.cause = cause
        if cause is not None:
            message = f"Install command could not be run: {cause}"
        else:
            message = f"Install command exited {returncode}"
        super().__init__(message)


class PortTimeoutError(ReloadError):
    """The supervised port was still bound after the wait bound elapsed."""

    def __init__(self, port: int, timeout: float):
        self.port = port
        self.timeout = timeout
        super().__init__(f"Port {port} still in use after {timeout:g}s")


class SignalError(ReloadError):
    """Signaling the server's process group failed for a reason other than it being gone."""

    def __init__(self, pgid: int, sig: Union[int, str], cause: BaseException):
        self.pgid = pgid
        self.sig = sig
        self.cause = cause
        super().__init__(f"Failed to send signal {sig} to process group {pgid}: {cause}")


class SpawnError(ReloadError):
    """The dev server could not be spawned. Logged, never raised out of start()."""

    def __init__(self, command, cause: BaseException):
        self.command = list(command)
        self.cause = cause
        super().__init__(f"Failed to spawn {' '.join(self.command)}: {cause}")
