import logging
import sys


class MainFormatter(logging.Formatter):
    """The console format shared by every DevReload logger."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for the supervisor.
    Clears any previously configured handlers to prevent duplication and
    installs a single stdout handler.

    The dev server and the installer inherit the supervisor's stdout/stderr,
    so their output is interleaved with these lines but never passes through
    the logging system.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # The inotify/fsevents backends are chatty at DEBUG.
    logging.getLogger("watchdog").setLevel(logging.INFO)
