"""Admin HTTP surface for the queue relay."""

from queue_relay.admin.server import create_app, create_server

__all__ = [
    "create_app",
    "create_server",
]
