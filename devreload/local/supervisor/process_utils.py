import os
import enum
import asyncio
import logging
import subprocess
from typing import Optional

import psutil

from devreload.local.app_process import get_popen_creation_flags, get_process_args
from devreload.local.config import MergedSettings, effective_settings
from devreload.local.supervisor import shutdown
from devreload.local.supervisor.errors import SpawnError

log = logging.getLogger(__name__)


class ServerState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class ServerProcess:
    """
    Owns at most one detached dev server process and its process group.

    The handle is only released once the supervised port is free again, so a
    new server can never be started while the previous one still holds it.
    """

    def __init__(self, config: Optional[MergedSettings] = None) -> None:
        self.config = config or effective_settings
        self.state = ServerState.STOPPED
        self.proc: Optional[psutil.Process] = None
        self.pgid: Optional[int] = None
        self._popen: Optional[subprocess.Popen] = None
        self._stop_task: Optional[asyncio.Future] = None

    @property
    def pid(self) -> Optional[int]:
        return self.proc.pid if self.proc else None

    @property
    def is_alive(self) -> bool:
        """Whether the group leader is still running (zombies count as dead)."""
        if self.proc is None:
            return False
        try:
            return self.proc.is_running() and self.proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def start(self) -> bool:
        """
        Launches the dev server as the leader of a new process group.

        Spawn failures are logged rather than raised; the handle then stays
        stopped. A successful spawn is treated as running straight away.

        :return bool: True if the process was spawned.
        :raises RuntimeError: If a server is already held by this handle.
        """
        if self.state is not ServerState.STOPPED:
            raise RuntimeError(f"Cannot start the dev server while it is {self.state.value}.")

        self.state = ServerState.STARTING
        args, cwd = get_process_args("dev_server", self.config)
        log.info(f"Starting dev server: {' '.join(args)}")
        try:
            popen = subprocess.Popen(
                args,
                cwd=str(cwd),
                env=os.environ.copy(),
                **get_popen_creation_flags(),
            )
        except (OSError, ValueError) as e:
            self.state = ServerState.STOPPED
            log.error(f"Dev server spawn failed: {SpawnError(args, e)}")
            return False

        self._popen = popen
        self.proc = psutil.Process(popen.pid)
        # start_new_session makes the child its own group leader.
        self.pgid = popen.pid
        self.state = ServerState.RUNNING
        log.info(f"Dev server started with PID: {popen.pid}")
        return True

    async def stop(self) -> None:
        """
        Stops the dev server's process group and waits for the port to be released.

        No-op when nothing is running. Concurrent callers share the stop already
        in flight instead of signaling the group a second time.

        :raises SignalError: If the group could not be signaled.
        :raises PortTimeoutError: If the port was not released in time; the
            handle is kept so a later stop() can retry.
        """
        if self._popen is None:
            return

        if self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self._stop())
        await asyncio.shield(self._stop_task)

    async def _stop(self) -> None:
        self.state = ServerState.STOPPING
        log.info(f"Stopping dev server (process group {self.pgid})...")
        try:
            await shutdown.graceful_shutdown_sequence(self, self.config)
        except BaseException:
            self.state = ServerState.RUNNING
            raise
        finally:
            self._stop_task = None

        returncode = self._popen.poll()
        if returncode is not None:
            log.debug(f"Dev server exited with code {returncode}.")

        self._popen = None
        self.proc = None
        self.pgid = None
        self.state = ServerState.STOPPED
        log.info("Dev server stopped.")
