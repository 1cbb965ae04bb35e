import os
import sys
import signal
import asyncio
import logging
from typing import TYPE_CHECKING

import psutil

from devreload.local.supervisor.errors import ReloadError, SignalError
from devreload.local.supervisor.ports import is_port_in_use, wait_for_port_free

if TYPE_CHECKING:
    from devreload.local.config import MergedSettings
    from .process_utils import ServerProcess
    from .supervisor import ReloadController

log = logging.getLogger(__name__)


def _signal_process_tree(proc: psutil.Process, force: bool) -> None:
    """Terminates or kills a process and all of its descendants (Windows)."""
    try:
        targets = proc.children(recursive=True) + [proc]
    except psutil.NoSuchProcess:
        log.debug(f"Process {proc.pid} no longer exists, nothing to signal.")
        return

    action = "kill" if force else "terminate"
    for target in targets:
        try:
            getattr(target, action)()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            raise SignalError(target.pid, action, e) from e


def signal_process_group(server: "ServerProcess", force: bool = False) -> None:
    """
    Sends SIGTERM (or SIGKILL when `force` is set) to the server's whole process group.

    A group that no longer exists counts as already stopped.

    :param server: The handle of the running dev server.
    :param force: Send the forceful signal instead of the graceful one.
    :raises SignalError: If signaling failed for any other reason.
    """
    if sys.platform == "win32":
        _signal_process_tree(server.proc, force)
        return

    sig = signal.SIGKILL if force else signal.SIGTERM
    log.debug(f"Sending {sig.name} to process group {server.pgid}")
    try:
        os.killpg(server.pgid, sig)
    except ProcessLookupError:
        log.debug(f"Process group {server.pgid} is already gone.")
    except OSError as e:
        raise SignalError(server.pgid, sig, e) from e


async def graceful_shutdown_sequence(server: "ServerProcess", config: "MergedSettings") -> None:
    """
    Runs the full two-phase shutdown for the dev server's process group.

    The group gets SIGTERM and a fixed grace period. If the port is still bound
    after that, the group gets SIGKILL. The sequence only returns once the port
    is free; whether the group leader itself has exited is not consulted.

    :param server: The handle of the running dev server.
    :param config: Settings providing the port and timing constants.
    :raises SignalError: If a signal could not be delivered.
    :raises PortTimeoutError: If the port stays bound past `PORT_FREE_TIMEOUT_SECONDS`.
    """
    signal_process_group(server)
    await asyncio.sleep(config.GRACEFUL_SHUTDOWN_TIMEOUT)

    if is_port_in_use(config.PORT, config.PORT_HOST):
        log.warning(
            f"Port {config.PORT} still in use after {config.GRACEFUL_SHUTDOWN_TIMEOUT}s. "
            f"Killing process group {server.pgid}."
        )
        signal_process_group(server, force=True)

    await wait_for_port_free(
        config.PORT,
        timeout=config.PORT_FREE_TIMEOUT_SECONDS,
        interval=config.PORT_POLL_INTERVAL_SECONDS,
        host=config.PORT_HOST,
    )


async def shutdown_sequence(controller: "ReloadController") -> None:
    """
    Tears the controller down: pending restart, watch subscription, dev server.

    Best-effort: failures are logged and the controller is marked stopped
    regardless, so the process always exits.

    :param controller: The ReloadController instance.
    """
    controller.closing = True
    controller.cancel_pending_restart()

    try:
        if controller.watcher is not None:
            await controller.watcher.close()
    except Exception as e:
        log.error(f"Failed to close the artifact watcher: {e}", exc_info=True)

    try:
        await controller.server.stop()
    except ReloadError as e:
        log.error(f"Dev server did not stop cleanly: {e}")
    except Exception as e:
        log.error(f"Unexpected error while stopping the dev server: {e}", exc_info=True)
    finally:
        controller.stopped.set()
        log.info("Shutdown complete.")
