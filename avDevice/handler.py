from __future__ import annotations

import logging
import os
import urllib.parse
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler
from pathlib import Path
from typing import Any, Optional

LOG = logging.getLogger(__name__)


def resolve_request_path(root: str | Path, request_path: str) -> Optional[Path]:
    """
    Map a request path onto the served root.

    Query and fragment are dropped, percent-escapes decoded and the result
    resolved (symlinks included). Returns None if it lands outside root.
    """
    root = Path(root).resolve()
    path = urllib.parse.unquote(urllib.parse.urlsplit(request_path).path, errors="surrogateescape")
    if "\x00" in path:
        return None
    try:
        candidate = (root / path.lstrip("/")).resolve()
    except (OSError, ValueError):
        return None
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


class StaticFileHandler(SimpleHTTPRequestHandler):
    """Serves files and directory listings below ``self.directory``."""

    server_version = "avDevice"
    # seconds an idle connection may hold its request thread
    timeout = 30.0

    def setup(self) -> None:
        self.timeout = getattr(self.server, "request_timeout", self.timeout)
        super().setup()

    def log_message(self, format: str, *args: Any) -> None:
        LOG.info("%s - - %s", self.client_address[0], format % args)

    def translate_path(self, path: str) -> str:
        """Symlink-resolved filesystem path for ``path``; empty when outside the root."""
        target = resolve_request_path(self.directory, path)
        if target is None:
            return ""
        if urllib.parse.urlsplit(path).path.endswith("/"):
            return os.path.join(str(target), "")
        return str(target)

    def send_head(self):  # type: ignore[override]
        path = self.translate_path(self.path)
        if not path:
            LOG.warning("Rejected path outside root from %s: %s", self.client_address[0], self.path)
            self.send_error(HTTPStatus.NOT_FOUND, "File not found")
            return None
        # a directory always gets its listing, even when it holds index.html
        if os.path.isdir(path) and path.endswith("/"):
            return self.list_directory(path)
        return super().send_head()
