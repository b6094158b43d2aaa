"""Static HTTP server for the pgBadger output directory.

The server runs in a daemon thread next to the download loop. It only reads
files that pgBadger has finished writing; nothing else is shared.
"""

import functools
import logging
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``"host:port"`` (or ``":port"``) into a bind tuple.

    Raises:
        ValueError: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address '{address}', expected host:port")
    return host.strip("[]"), int(port)


class _ReportRequestHandler(SimpleHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class ReportServer:
    """Serve a directory read-only over HTTP."""

    def __init__(self, listen_address: str, directory: str):
        self.listen_address = listen_address
        self.directory = Path(directory).resolve()
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_address(self) -> Tuple[str, int]:
        if self._httpd is None:
            raise RuntimeError("Report server is not running")
        return self._httpd.server_address[:2]

    def start(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        handler = functools.partial(_ReportRequestHandler, directory=str(self.directory))
        self._httpd = ThreadingHTTPServer(parse_listen_address(self.listen_address), handler)
        self._httpd.daemon_threads = True

        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            name="report-server",
            daemon=True,
        )
        self._thread.start()
        logger.info("starting http server on %s serving %s", self.listen_address, self.directory)

    def stop(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._httpd = None
        self._thread = None
        logger.info("stopped http server on %s", self.listen_address)
