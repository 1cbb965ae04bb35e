import asyncio
import logging
from typing import Callable, Optional, Set

from devreload.local.config import MergedSettings, effective_settings
from devreload.local.supervisor import shutdown, startup
from devreload.local.supervisor.errors import ReloadError
from devreload.local.supervisor.installer import ArtifactInstaller
from devreload.local.supervisor.process_utils import ServerProcess
from devreload.local.supervisor.watcher import ArtifactWatcher

log = logging.getLogger(__name__)


class ReloadController:
    """
    Restarts the dev server every time the watched artifact is rewritten.

    The controller is the single owner of the mutable supervisor state: the
    server handle, the pending debounce timer, the in-progress flag and the
    watch subscription. Everything runs on one asyncio loop, so the flag check
    and set at the top of a cycle cannot interleave with another cycle.
    """

    def __init__(
        self,
        config: Optional[MergedSettings] = None,
        server: Optional[ServerProcess] = None,
        installer: Optional[ArtifactInstaller] = None,
        watcher_factory: Optional[Callable[..., ArtifactWatcher]] = None,
    ) -> None:
        """Initializes the controller state."""
        self.config = config or effective_settings
        self.server = server or ServerProcess(self.config)
        self.installer = installer or ArtifactInstaller(self.config)
        self.watcher_factory = watcher_factory or ArtifactWatcher
        self.watcher: Optional[ArtifactWatcher] = None

        self.restarting = False
        self.closing = False
        self.stopped = asyncio.Event()
        self._restart_timer: Optional[asyncio.TimerHandle] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._shutdown_task: Optional[asyncio.Future] = None

    @property
    def restart_pending(self) -> bool:
        return self._restart_timer is not None

    async def start(self) -> None:
        """Runs the startup sequence. Errors propagate to the caller."""
        await startup.run_startup_sequence(self)

    def on_artifact_event(self, kind: str) -> None:
        """Watcher callback for `add` and `change` notifications."""
        self.schedule_restart(f"artifact:{kind}")

    def schedule_restart(self, reason: str) -> None:
        """
        (Re)arms the debounce timer so a burst of events triggers one restart.

        Any pending timer is cancelled; only the latest reason survives.

        :param reason: What triggered the restart, for the log.
        """
        if self.closing:
            log.debug(f"Ignoring restart request ({reason}): shutting down.")
            return

        self.cancel_pending_restart()
        loop = asyncio.get_running_loop()
        self._restart_timer = loop.call_later(
            self.config.RESTART_DEBOUNCE_SECONDS, self._fire_restart, reason
        )

    def cancel_pending_restart(self) -> None:
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    def _fire_restart(self, reason: str) -> None:
        self._restart_timer = None
        task = asyncio.ensure_future(self.run_restart_cycle(reason))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def run_restart_cycle(self, reason: str) -> bool:
        """
        Stops the server, reinstalls the artifact and starts the server again.

        A cycle that finds another one in progress is dropped, not queued.
        Failures are logged and leave the server stopped until the next event.

        :param reason: What triggered the restart, for the log.
        :return bool: False if the cycle was dropped, True if it ran.
        """
        if self.restarting:
            log.debug(f"Restart ({reason}) dropped: another restart is in progress.")
            return False

        self.restarting = True
        try:
            log.info(f"Restart ({reason})")
            await self.server.stop()
            await self.installer.install()
            if self.closing:
                log.info("Shutdown in progress. Not starting the dev server.")
            else:
                self.server.start()
        except Exception as e:
            log.error(f"Restart ({reason}) failed: {e}", exc_info=not isinstance(e, ReloadError))
        finally:
            self.restarting = False
        return True

    def request_shutdown(self, reason: str = "shutdown") -> None:
        """Signal-handler entry point. Starts shutdown once; repeats are ignored."""
        if self._shutdown_task is not None:
            log.warning(f"Received {reason} while already shutting down. Ignoring.")
            return
        log.info(f"Received {reason}. Shutting down...")
        self.closing = True
        self._shutdown_task = asyncio.ensure_future(shutdown.shutdown_sequence(self))

    async def shutdown(self) -> None:
        """Runs (or joins) the shutdown sequence and waits for it to finish."""
        if self._shutdown_task is None:
            self.closing = True
            self._shutdown_task = asyncio.ensure_future(shutdown.shutdown_sequence(self))
        await asyncio.shield(self._shutdown_task)

    async def run(self) -> None:
        """
        Starts supervising and returns once a termination request has been handled.

        A termination request during startup cancels the startup sequence, and
        a startup error raised after shutdown began is logged, not raised.

        :raises ReloadError: If the startup sequence fails; the watch subscription
            is closed before the error propagates.
        """
        startup.install_signal_handlers(self)
        startup_task = asyncio.ensure_future(self.start())
        stopped_task = asyncio.ensure_future(self.stopped.wait())
        try:
            await asyncio.wait({startup_task, stopped_task}, return_when=asyncio.FIRST_COMPLETED)
            if not startup_task.done():
                # Shutdown finished first; abandon the install still running.
                startup_task.cancel()
            try:
                await startup_task
            except (Exception, asyncio.CancelledError) as e:
                if not self.closing:
                    if self.watcher is not None:
                        await self.watcher.close()
                    raise
                log.info(f"Startup interrupted by shutdown: {e!r}")
            await stopped_task
        finally:
            startup_task.cancel()
            stopped_task.cancel()
            startup.remove_signal_handlers()
