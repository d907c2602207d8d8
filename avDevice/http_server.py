from __future__ import annotations

import logging
import ssl
import threading
from http.server import ThreadingHTTPServer
from pathlib import Path
from typing import Optional

from .handler import StaticFileHandler

LOG = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class _FileHTTPServer(ThreadingHTTPServer):
    # server_close() waits for request threads, so in-flight responses finish;
    # request_timeout bounds how long an idle client can hold one of them
    daemon_threads = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    ssl_context: Optional[ssl.SSLContext] = None

    def get_request(self):
        sock, addr = self.socket.accept()
        if self.ssl_context is not None:
            # handshake happens on the request thread, never in accept()
            sock = self.ssl_context.wrap_socket(sock, server_side=True, do_handshake_on_connect=False)
        return sock, addr

    def finish_request(self, request, client_address) -> None:
        if isinstance(request, ssl.SSLSocket):
            request.settimeout(self.request_timeout)
            try:
                request.do_handshake()
            except OSError as exc:
                LOG.info("TLS handshake with %s failed: %s", client_address[0], exc)
                return
        super().finish_request(request, client_address)


class HttpFileServer:
    scheme = "http"

    def __init__(self, root_dir: str | Path, host: str = "0.0.0.0", port: int = 8080, logger: Optional[logging.Logger] = None, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.host = host
        self.port = port
        self.request_timeout = request_timeout
        self.logger = logger or LOG
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self.sock_port: Optional[int] = None

    def _make_server(self) -> _FileHTTPServer:
        root = str(self.root_dir)
        server = _FileHTTPServer((self.host, self.port), lambda *args, **kwargs: StaticFileHandler(*args, directory=root, **kwargs))
        server.request_timeout = self.request_timeout
        return server

    def start(self) -> None:
        """Bind and serve on a background thread. Bind errors propagate as OSError."""
        if self._server:
            return
        server = self._make_server()
        self._server = server
        self.sock_port = server.server_address[1]
        self.logger.info("%s server serving %s on %s:%d", self.scheme.upper(), self.root_dir, self.host, self.sock_port)
        thr = threading.Thread(target=server.serve_forever, name=f"{self.scheme}-{self.sock_port}", daemon=True)
        self._thread = thr
        thr.start()

    def stop(self) -> None:
        if self._server:
            try:
                self._server.shutdown()
            except Exception:
                self.logger.exception("Error shutting down %s server", self.scheme.upper())
            try:
                self._server.server_close()
            except Exception:
                self.logger.exception("Error closing %s server", self.scheme.upper())
            self._server = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
            self._thread = None
        self.sock_port = None

    @property
    def running(self) -> bool:
        return self._server is not None


class HttpsFileServer(HttpFileServer):
    scheme = "https"

    def __init__(self, root_dir: str | Path, host: str = "0.0.0.0", port: int = 8443, certfile: str | Path | None = None, keyfile: str | Path | None = None, logger: Optional[logging.Logger] = None, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        super().__init__(root_dir, host=host, port=port, logger=logger, request_timeout=request_timeout)
        self.certfile = certfile
        self.keyfile = keyfile

    def _make_server(self) -> _FileHTTPServer:
        if not self.certfile or not self.keyfile:
            raise ValueError("Both certfile and keyfile are required for HTTPS")
        # load the pair before binding so a bad pair never holds the port
        ctx = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        ctx.load_cert_chain(certfile=str(self.certfile), keyfile=str(self.keyfile))
        server = super()._make_server()
        server.ssl_context = ctx
        return server
