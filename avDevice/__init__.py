from .config import ServerConfig
from .handler import StaticFileHandler, resolve_request_path
from .http_server import HttpFileServer, HttpsFileServer
from .server import ListenerState, avDeviceServer

__all__ = [
    "avDeviceServer",
    "HttpFileServer",
    "HttpsFileServer",
    "ListenerState",
    "ServerConfig",
    "StaticFileHandler",
    "resolve_request_path",
]
