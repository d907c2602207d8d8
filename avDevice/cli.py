from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from . import avDeviceServer
from .config import DEFAULT_HTTP_PORT, DEFAULT_HTTPS_PORT, ServerConfig

LOG = logging.getLogger("avDevice.cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="serve-av-device", description="Serve a static directory with listings over HTTP and, when a certificate pair exists, HTTPS")
    p.add_argument("--root-dir", "-r", default="public", help="Directory to serve files from")
    p.add_argument("--host", default="0.0.0.0", help="Host/interface to bind")
    p.add_argument("--http-port", type=int, default=DEFAULT_HTTP_PORT, help="HTTP port (0 for ephemeral)")
    # HTTPS options
    p.add_argument("--https-port", type=int, default=DEFAULT_HTTPS_PORT, help="HTTPS port (0 for ephemeral)")
    p.add_argument("--cert-dir", default="../../cert", help="Directory holding the certificate pair")
    p.add_argument("--key-name", default="server.key", help="Private key file name inside --cert-dir")
    p.add_argument("--cert-name", default="server.cert", help="Certificate file name inside --cert-dir")
    p.add_argument("--no-https", dest="enable_https", action="store_false", help="Never start the HTTPS listener")
    p.add_argument("--request-timeout", type=float, default=30.0, help="Seconds an idle connection may stay open")
    p.add_argument("--log-level", default="INFO", help="Logging level")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    root = Path(args.root_dir).resolve()
    if not root.is_dir():
        LOG.error("root directory does not exist: %s", root)
        return 2

    config = ServerConfig(
        root_dir=root,
        host=args.host,
        http_port=args.http_port,
        https_port=args.https_port,
        cert_dir=Path(args.cert_dir),
        key_name=args.key_name,
        cert_name=args.cert_name,
        enable_https=bool(args.enable_https),
        request_timeout=args.request_timeout,
    )
    server = avDeviceServer(config, logger=LOG)

    stop_requested = False

    def _on_signal(signum, frame):
        nonlocal stop_requested
        LOG.info("Received signal %s, shutting down servers...", signum)
        stop_requested = True

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        server.start()
        if not server.running:
            LOG.error("No server could be started (HTTP=%s HTTPS=%s)", server.http_state.value, server.https_state.value)
            return 1
        while not stop_requested:
            signal.pause()
    except KeyboardInterrupt:
        LOG.info("Keyboard interrupt received, shutting down servers")
    except Exception:
        LOG.exception("Server failed")
        return 1
    finally:
        server.stop()
        LOG.info("Servers stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
