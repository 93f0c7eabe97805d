"""Relay side of the queue relay: webhook forwarder, relay loop and CLI."""

from queue_relay.forwarder.app import (
    cli,
    get_app_config,
    get_queue_client,
    load_config,
    load_config_from_file,
    run_relay,
    setup_app,
)
from queue_relay.forwarder.client import WebhookForwarder
from queue_relay.forwarder.relay import (
    FatalAckError,
    FatalQueueError,
    RelayError,
    RelayLoop,
    RelayState,
)

__all__ = [
    "get_app_config",
    "get_queue_client",
    "load_config",
    "load_config_from_file",
    "setup_app",
    "run_relay",
    "cli",
    "WebhookForwarder",
    "FatalAckError",
    "FatalQueueError",
    "RelayError",
    "RelayLoop",
    "RelayState",
]
