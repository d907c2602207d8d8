from __future__ import annotations

import enum
import errno
import logging
import socket
import ssl
from typing import Optional

from .config import ServerConfig
from .http_server import HttpFileServer, HttpsFileServer

LOG = logging.getLogger(__name__)

SELF_SIGNED_HINT = "openssl req -nodes -new -x509 -keyout {key} -out {cert}"


class ListenerState(enum.Enum):
    INIT = "init"
    RUNNING = "running"
    FAILED = "failed"
    SKIPPED = "skipped"
    CLOSED = "closed"


def describe_bind_error(exc: OSError, port: int) -> str:
    """Human readable cause for a failed bind."""
    if exc.errno == errno.EADDRINUSE:
        return f"port {port} is already in use, check whether another service is running on it"
    if exc.errno == errno.EACCES:
        return f"permission denied binding port {port}, use a port above 1024 or run with privileges"
    return exc.strerror or str(exc)


def display_address(host: str) -> str:
    """Address to show in example URLs. No DNS lookup and no packets sent."""
    if host not in ("0.0.0.0", ""):
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # connect() on UDP only picks the outbound interface
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return "[your IP address]"


class avDeviceServer:
    """
    Starts the plain HTTP listener and, when a certificate pair is found,
    the HTTPS listener. The two tracks are independent: a failure in one is
    logged and recorded in its state, never raised, and never stops the other.
    """

    def __init__(self, config: ServerConfig, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.logger = logger or LOG
        self.http_state = ListenerState.INIT
        self.https_state = ListenerState.INIT
        self._http: Optional[HttpFileServer] = None
        self._https: Optional[HttpsFileServer] = None
        self._display_address: Optional[str] = None

    @property
    def http_sock_port(self) -> Optional[int]:
        return self._http.sock_port if self._http else None

    @property
    def https_sock_port(self) -> Optional[int]:
        return self._https.sock_port if self._https else None

    @property
    def running(self) -> bool:
        return ListenerState.RUNNING in (self.http_state, self.https_state)

    def start(self) -> None:
        self._display_address = display_address(self.config.host)
        self._start_http()
        self._start_https()

    def stop(self) -> None:
        """Close both listeners, letting in-flight responses complete."""
        for name, srv in (("HTTP", self._http), ("HTTPS", self._https)):
            if srv is None:
                continue
            try:
                srv.stop()
            except Exception:
                self.logger.exception("Error stopping %s server", name)
            else:
                self.logger.info("%s server closed", name)
        self._http = None
        self._https = None
        if self.http_state is ListenerState.RUNNING:
            self.http_state = ListenerState.CLOSED
        if self.https_state is ListenerState.RUNNING:
            self.https_state = ListenerState.CLOSED

    def _announce(self, scheme: str, port: int) -> None:
        self.logger.info("%s server running on port %d", scheme.upper(), port)
        self.logger.info("Access at %s://localhost:%d or %s://%s:%d", scheme, port, scheme, self._display_address, port)

    def _start_http(self) -> None:
        cfg = self.config
        srv = HttpFileServer(cfg.root_dir, host=cfg.host, port=cfg.http_port, logger=self.logger, request_timeout=cfg.request_timeout)
        try:
            srv.start()
        except OSError as exc:
            self.http_state = ListenerState.FAILED
            self.logger.error("HTTP server failed to start: %s", describe_bind_error(exc, cfg.http_port))
            return
        self._http = srv
        self.http_state = ListenerState.RUNNING
        self._announce("http", srv.sock_port)

    def _start_https(self) -> None:
        cfg = self.config
        if not cfg.enable_https:
            self.https_state = ListenerState.SKIPPED
            self.logger.info("HTTPS server disabled")
            return
        if not cfg.certificates_present():
            self.https_state = ListenerState.SKIPPED
            self.logger.info("HTTPS server not running, missing %s and %s", cfg.key_name, cfg.cert_name)
            self.logger.info("Expected readable files at %s and %s", cfg.keyfile, cfg.certfile)
            self.logger.info("To generate a self-signed pair run: %s", SELF_SIGNED_HINT.format(key=cfg.keyfile, cert=cfg.certfile))
            return
        srv = HttpsFileServer(cfg.root_dir, host=cfg.host, port=cfg.https_port, certfile=cfg.certfile, keyfile=cfg.keyfile, logger=self.logger, request_timeout=cfg.request_timeout)
        try:
            srv.start()
        except ssl.SSLError as exc:
            self.https_state = ListenerState.FAILED
            self.logger.error("HTTPS server failed to start, invalid key/certificate pair: %s", exc)
            return
        except OSError as exc:
            self.https_state = ListenerState.FAILED
            self.logger.error("HTTPS server failed to start: %s", describe_bind_error(exc, cfg.https_port))
            return
        self._https = srv
        self.https_state = ListenerState.RUNNING
        self._announce("https", srv.sock_port)
