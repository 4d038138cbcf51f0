"""Flask backend serving the title request API."""

from .server import SocketIOReporter, create_app

__all__ = ["SocketIOReporter", "create_app"]
