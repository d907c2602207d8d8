from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HTTP_PORT = 8080
DEFAULT_HTTPS_PORT = 8443


@dataclass
class ServerConfig:
    """Everything the listener bootstrap needs; built once by the CLI."""

    root_dir: Path = Path("public")
    host: str = "0.0.0.0"
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = DEFAULT_HTTPS_PORT
    cert_dir: Path = Path("../../cert")
    key_name: str = "server.key"
    cert_name: str = "server.cert"
    enable_https: bool = True
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        self.root_dir = Path(self.root_dir).resolve()
        self.cert_dir = Path(self.cert_dir)

    @property
    def keyfile(self) -> Path:
        return self.cert_dir / self.key_name

    @property
    def certfile(self) -> Path:
        return self.cert_dir / self.cert_name

    def certificates_present(self) -> bool:
        """True only when both key and certificate exist and can be read."""
        return all(p.is_file() and os.access(p, os.R_OK) for p in (self.keyfile, self.certfile))
