import asyncio
import logging
import socket
import sys
import time

from .errors import PortTimeoutError

log = logging.getLogger(__name__)


def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """
    Reports whether something currently holds `port` on `host`.

    A throwaway listener is bound and closed straight away. Any bind failure
    (address in use, permission denied, ...) counts as "in use". This detects a
    bound port, not a live process: a server that has exited but left the
    socket in use still reads as running.

    :param port: The TCP port to check.
    :param host: The loopback address to bind on.
    :return bool: True if the bind failed.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            # Lingering TIME_WAIT connections from a dead server must not read as "in use".
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(1)
    except OSError as e:
        log.debug(f"Port {port} is in use ({e}).")
        return True
    finally:
        sock.close()
    return False


async def wait_for_port_free(
    port: int,
    timeout: float,
    interval: float,
    host: str = "127.0.0.1",
) -> None:
    """
    Polls the port on a constant interval until nothing holds it.

    :param port: The TCP port to watch.
    :param timeout: Seconds to wait before giving up.
    :param interval: Seconds between checks. No backoff is applied.
    :param host: The loopback address to check on.
    :raises PortTimeoutError: If the port is still bound once `timeout` is exceeded.
    """
    start = time.monotonic()
    while is_port_in_use(port, host):
        if time.monotonic() - start > timeout:
            raise PortTimeoutError(port, timeout)
        await asyncio.sleep(interval)
