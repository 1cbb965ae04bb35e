import shlex
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from devreload.local.config import MergedSettings


def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments that detach a child into its
    own process group.

    On Windows, the child gets a new process group so it can be signaled apart
    from the supervisor. On other platforms the child becomes the leader of a
    new session, and therefore of a new process group whose id equals its PID.

    :return dict: A dictionary of keyword arguments for Popen.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _format_command(command: str, config: MergedSettings) -> List[str]:
    """Splits a command template and fills its placeholders token by token."""
    tokens = shlex.split(command, posix=sys.platform != "win32")
    if not tokens:
        raise ValueError(f"Command '{command}' is empty after parsing.")

    values = {
        "artifact": str(config.artifact_path),
        "port": str(config.PORT),
        "python": sys.executable,
    }
    return [token.format(**values) for token in tokens]


def get_process_args(process_name: str, config: MergedSettings) -> Tuple[List[str], Path]:
    """
    Returns the command-line arguments and CWD for a specific collaborator.

    Both collaborators run from the application root.

    :param process_name: The logical name of the process ('installer' or 'dev_server').
    :param config: The settings holding the command templates.
    :return tuple: A tuple containing (list of command arguments, CWD path).
    :raises ValueError: If the process name is unknown or its command is empty.
    """
    process_definitions = {
        "installer": config.INSTALL_COMMAND,
        "dev_server": config.SERVER_COMMAND,
    }

    if process_name not in process_definitions:
        raise ValueError(f"Unknown process name '{process_name}'. No arguments defined.")

    return _format_command(process_definitions[process_name], config), Path(config.APP_ROOT)
