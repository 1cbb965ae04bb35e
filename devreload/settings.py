"""
This module contains the configuration defaults for DevReload.
It defines the watched artifact, the supervised port, the collaborator commands
and the timing constants of the restart cycle.
Values can be overridden through the environment or a `.env` file; the
modifiable subset can additionally be overridden by `devreload.json`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
APP_ROOT = pathlib.Path(os.getenv("DEVRELOAD_APP_ROOT", os.getcwd())).resolve()
PACK_DIR = APP_ROOT.parent / "pack"
ARTIFACT_PATH = pathlib.Path(os.getenv("DEVRELOAD_ARTIFACT", str(PACK_DIR / "package.tgz"))).resolve()
OVERRIDES_JSON_PATH = APP_ROOT / "devreload.json"

#* --- Supervised Server ---
PORT = int(os.getenv("DEVRELOAD_PORT", "8080"))
PORT_HOST = "127.0.0.1"

#* --- Collaborator Commands ---
# Tokens are split with shlex, then formatted with {artifact}, {port} and {python}.
INSTALL_COMMAND = os.getenv("DEVRELOAD_INSTALL_COMMAND", "npm i --no-save {artifact}")
SERVER_COMMAND = os.getenv("DEVRELOAD_SERVER_COMMAND", "npm run dev")

#* --- Restart Cycle Timing ---
RESTART_DEBOUNCE_SECONDS = 0.35
GRACEFUL_SHUTDOWN_TIMEOUT = 1.2     # seconds between SIGTERM and the port check
PORT_POLL_INTERVAL_SECONDS = 0.15
PORT_FREE_TIMEOUT_SECONDS = 8.0

#* --- Watcher Settings ---
WRITE_STABILITY_THRESHOLD_SECONDS = 2.0  # size/mtime must hold still this long
WRITE_POLL_INTERVAL_SECONDS = 0.1

#* --- Process ---
PROCESS_TITLE = "DevReload - Supervisor"

#* --- MODIFIABLE SETTINGS (Changeable via devreload.json) ---
MODIFIABLE_SETTINGS = {
    "ARTIFACT_PATH",
    "PORT",
    "INSTALL_COMMAND",
    "SERVER_COMMAND",
}
