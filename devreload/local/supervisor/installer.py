import asyncio
import logging
import contextlib
from pathlib import Path
from typing import Optional

from devreload.local.app_process import get_process_args
from devreload.local.config import MergedSettings, effective_settings
from devreload.local.supervisor.errors import InstallFailedError, MissingArtifactError

log = logging.getLogger(__name__)


class ArtifactInstaller:
    """Installs the local build artifact into the app's dependencies."""

    def __init__(self, config: Optional[MergedSettings] = None) -> None:
        self.config = config or effective_settings

    @property
    def artifact_path(self) -> Path:
        return self.config.artifact_path

    async def install(self) -> None:
        """
        Runs the install command to completion with inherited I/O.

        :raises MissingArtifactError: If the artifact is absent; the command is not run.
        :raises InstallFailedError: If the command could not be spawned or exited non-zero.
        :raises asyncio.CancelledError: If cancelled; the install command is killed first.
        """
        path = self.artifact_path
        if not path.exists():
            raise MissingArtifactError(path)

        args, cwd = get_process_args("installer", self.config)
        log.info(f"Installing {path}")
        try:
            process = await asyncio.create_subprocess_exec(*args, cwd=str(cwd))
        except OSError as e:
            raise InstallFailedError(cause=e) from e

        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            log.warning(f"Install interrupted. Killing install command (PID {process.pid}).")
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise

        if returncode != 0:
            raise InstallFailedError(returncode=returncode)
        log.info("Install complete.")
