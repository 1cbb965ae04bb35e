import sys
import asyncio
import logging
from typing import List, Optional

import setproctitle

from devreload.log.setup import setup_logging
from devreload.local.config import effective_settings as config
from devreload.local.supervisor import ReloadController, ReloadError

log = logging.getLogger("devreload")

USAGE = """usage: devreload [--verbose]

Watches the build artifact, reinstalls it whenever it is rewritten and
restarts the dev server around each reinstall. Stop with Ctrl+C.

Configuration comes from DEVRELOAD_* environment variables (or a .env file)
and from devreload.json in the application root.
"""


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the supervisor.

    :param argv: Command-line arguments without the program name.
    :return int: The process exit code.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    if "-h" in args or "--help" in args:
        print(USAGE)
        return 0

    verbose = "--verbose" in args
    args = [arg for arg in args if arg != "--verbose"]
    if args:
        print(f"Unknown arguments: {' '.join(args)}\n", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 2

    setproctitle.setproctitle(config.PROCESS_TITLE)
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    log.debug(f"Artifact: {config.artifact_path} | Port: {config.PORT} | App root: {config.APP_ROOT}")

    controller = ReloadController(config)
    try:
        asyncio.run(controller.run())
    except ReloadError as e:
        log.critical(f"Startup failed: {e}")
        return 1

    log.info("Exiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
