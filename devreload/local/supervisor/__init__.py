"""
The Supervisor package.
Keeps a dev server running against the latest build of a local artifact.

This package contains the central ReloadController class and its helper
modules, which together handle watching the artifact, reinstalling it, and
stopping and starting the dev server around each reinstall.
"""
from .errors import (
    InstallFailedError,
    MissingArtifactError,
    PortTimeoutError,
    ReloadError,
    SignalError,
    SpawnError,
)
from .supervisor import ReloadController

__all__ = [
    "ReloadController",
    "ReloadError",
    "MissingArtifactError",
    "InstallFailedError",
    "PortTimeoutError",
    "SignalError",
    "SpawnError",
]
