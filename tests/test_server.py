from __future__ import annotations

import errno
import os
import socket
from pathlib import Path

import pytest

from avDevice import ListenerState, ServerConfig, avDeviceServer
from avDevice import server as server_mod
from avDevice.server import describe_bind_error, display_address


def _http_get(host: str, port: int, path: str, timeout: float = 2.0) -> bytes:
    s = socket.create_connection((host, port), timeout=timeout)
    try:
        s.sendall(f"GET {path} HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n".encode("utf-8"))
        s.settimeout(timeout)
        data = b""
        while True:
            part = s.recv(4096)
            if not part:
                break
            data += part
        return data
    finally:
        s.close()


def _free_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def _config(tmp_path: Path, **overrides) -> ServerConfig:
    root = tmp_path / "public"
    root.mkdir(exist_ok=True)
    (root / "index.html").write_text("plain-ok")
    values = dict(root_dir=root, host="127.0.0.1", http_port=0, https_port=0, cert_dir=tmp_path / "cert")
    values.update(overrides)
    return ServerConfig(**values)


def test_config_defaults() -> None:
    cfg = ServerConfig()
    assert cfg.http_port == 8080
    assert cfg.https_port == 8443
    assert cfg.host == "0.0.0.0"
    assert cfg.root_dir.is_absolute()
    assert cfg.keyfile == Path("../../cert/server.key")
    assert cfg.certfile == Path("../../cert/server.cert")


def test_certificates_present_needs_both(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    assert not cfg.certificates_present()
    cfg.cert_dir.mkdir()
    cfg.keyfile.write_text("k")
    assert not cfg.certificates_present()
    cfg.certfile.write_text("c")
    assert cfg.certificates_present()


def test_certificates_present_rejects_directories(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    cfg.keyfile.mkdir(parents=True)
    cfg.certfile.mkdir(parents=True)
    assert not cfg.certificates_present()


def test_describe_bind_error() -> None:
    assert "already in use" in describe_bind_error(OSError(errno.EADDRINUSE, "Address already in use"), 8080)
    assert "permission denied" in describe_bind_error(OSError(errno.EACCES, "Permission denied"), 80)
    assert describe_bind_error(OSError(errno.EADDRNOTAVAIL, "Cannot assign requested address"), 1) == "Cannot assign requested address"


def test_missing_certificates_skip_https(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    https_port = _free_port()
    srv = avDeviceServer(_config(tmp_path, https_port=https_port))
    with caplog.at_level("INFO"):
        srv.start()
    try:
        assert srv.http_state is ListenerState.RUNNING
        assert srv.https_state is ListenerState.SKIPPED
        assert srv.https_sock_port is None
        assert srv.running
        assert "openssl req -nodes -new -x509" in caplog.text
        assert "server.key" in caplog.text and "server.cert" in caplog.text
        assert f"http://localhost:{srv.http_sock_port}" in caplog.text

        resp = _http_get("127.0.0.1", srv.http_sock_port, "/index.html")
        assert b"200 OK" in resp
        assert resp.endswith(b"plain-ok")
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", https_port), timeout=1.0).close()
    finally:
        srv.stop()


def test_https_disabled(tmp_path: Path) -> None:
    srv = avDeviceServer(_config(tmp_path, enable_https=False))
    srv.start()
    try:
        assert srv.https_state is ListenerState.SKIPPED
    finally:
        srv.stop()


def test_http_port_in_use_is_not_fatal(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    busy = blocker.getsockname()[1]
    srv = avDeviceServer(_config(tmp_path, http_port=busy))
    try:
        with caplog.at_level("INFO"):
            srv.start()
        assert srv.http_state is ListenerState.FAILED
        assert srv.http_sock_port is None
        # the encrypted track still ran its own checks
        assert srv.https_state is ListenerState.SKIPPED
        assert not srv.running
        assert f"port {busy} is already in use" in caplog.text
    finally:
        srv.stop()
        blocker.close()


def test_invalid_certificate_pair_fails_https_only(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    cfg = _config(tmp_path)
    cfg.cert_dir.mkdir()
    cfg.keyfile.write_text("not a key")
    cfg.certfile.write_text("not a cert")
    srv = avDeviceServer(cfg)
    try:
        with caplog.at_level("ERROR"):
            srv.start()
        assert srv.https_state is ListenerState.FAILED
        assert srv.http_state is ListenerState.RUNNING
        assert "invalid key/certificate pair" in caplog.text
        assert b"200 OK" in _http_get("127.0.0.1", srv.http_sock_port, "/index.html")
    finally:
        srv.stop()


def test_stop_closes_running_listeners(tmp_path: Path) -> None:
    srv = avDeviceServer(_config(tmp_path))
    srv.start()
    port = srv.http_sock_port
    srv.stop()
    assert srv.http_state is ListenerState.CLOSED
    assert srv.https_state is ListenerState.SKIPPED
    assert not srv.running
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=1.0).close()
    # second stop is a no-op
    srv.stop()


def test_stop_exception_paths(tmp_path: Path) -> None:
    """Stop logs errors from a listener's stop() and still closes the other."""
    srv = avDeviceServer(_config(tmp_path))

    class _Boom:
        def stop(self) -> None:
            raise RuntimeError("boom")

    class _Ok:
        stopped = 0

        def stop(self) -> None:
            self.stopped += 1

    ok = _Ok()
    srv._http = _Boom()  # type: ignore[assignment]
    srv._https = ok  # type: ignore[assignment]
    srv.stop()
    assert ok.stopped == 1


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root can read any file")
def test_unreadable_key_skips_https(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    cfg.cert_dir.mkdir()
    cfg.keyfile.write_text("k")
    cfg.certfile.write_text("c")
    cfg.keyfile.chmod(0)
    try:
        assert not cfg.certificates_present()
        srv = avDeviceServer(cfg)
        srv.start()
        try:
            assert srv.https_state is ListenerState.SKIPPED
            assert srv.http_state is ListenerState.RUNNING
        finally:
            srv.stop()
    finally:
        cfg.keyfile.chmod(0o600)


def test_display_address_specific_host() -> None:
    assert display_address("127.0.0.1") == "127.0.0.1"


def test_display_address_without_route(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_socket(*args, **kwargs):
        raise OSError(errno.ENETUNREACH, "Network is unreachable")

    monkeypatch.setattr(server_mod.socket, "socket", _no_socket)
    assert display_address("0.0.0.0") == "[your IP address]"


def test_display_address_resolved_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(server_mod, "display_address", lambda host: calls.append(host) or "10.0.0.5")
    srv = avDeviceServer(_config(tmp_path, enable_https=False))
    srv.start()
    try:
        assert calls == ["127.0.0.1"]
    finally:
        srv.stop()
