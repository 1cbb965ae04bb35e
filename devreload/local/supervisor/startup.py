import signal
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .supervisor import ReloadController

log = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def run_startup_sequence(controller: "ReloadController") -> None:
    """
    Subscribes to the artifact, installs it once and starts the dev server.

    Each step is awaited in order, so the server never starts against an
    artifact that has not been installed. Failures propagate to the caller.

    :param controller: The ReloadController instance.
    """
    controller.watcher = controller.watcher_factory(
        controller.config.artifact_path,
        on_event=controller.on_artifact_event,
        config=controller.config,
    )
    await controller.watcher.start()
    await controller.installer.install()

    if controller.closing:
        log.info("Shutdown requested during startup. Not starting the dev server.")
        return
    controller.server.start()


def install_signal_handlers(controller: "ReloadController") -> None:
    """
    Routes SIGINT and SIGTERM to the controller's shutdown.

    Uses the loop's own signal support where available; otherwise falls back
    to `signal.signal` and hops onto the loop thread-safely.

    :param controller: The ReloadController instance.
    """
    loop = asyncio.get_running_loop()
    for sig in TERMINATION_SIGNALS:
        try:
            loop.add_signal_handler(sig, controller.request_shutdown, sig.name)
        except NotImplementedError:
            signal.signal(
                sig,
                lambda signum, _frame: loop.call_soon_threadsafe(
                    controller.request_shutdown, signal.Signals(signum).name
                ),
            )


def remove_signal_handlers() -> None:
    """Restores default handling for the termination signals."""
    loop = asyncio.get_running_loop()
    for sig in TERMINATION_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            signal.signal(sig, signal.SIG_DFL)
