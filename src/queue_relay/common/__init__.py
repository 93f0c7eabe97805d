"""Common utilities and models for the queue relay."""

from queue_relay.common.config import (
    AWSSQSConfig,
    AdminConfig,
    AzureServiceBusConfig,
    GCPPubSubConfig,
    QueueType,
    RelayConfig,
    TLSConfig,
)
from queue_relay.common.models import (
    AckPolicy,
    ForwardAttempt,
    ForwardOutcome,
    QueueMessage,
)
from queue_relay.common.queue import (
    AWSSQSClient,
    AzureServiceBusClient,
    GCPPubSubClient,
    QueueClient,
    create_queue_client,
)
from queue_relay.common.metrics import MetricsRegistry, MetricsSink
from queue_relay.common.tls import create_ssl_context

__all__ = [
    # Config
    "AWSSQSConfig",
    "AdminConfig",
    "AzureServiceBusConfig",
    "GCPPubSubConfig",
    "QueueType",
    "RelayConfig",
    "TLSConfig",
    # Models
    "AckPolicy",
    "ForwardAttempt",
    "ForwardOutcome",
    "QueueMessage",
    # Queue
    "AWSSQSClient",
    "AzureServiceBusClient",
    "GCPPubSubClient",
    "QueueClient",
    "create_queue_client",
    # Metrics
    "MetricsRegistry",
    "MetricsSink",
    # TLS
    "create_ssl_context",
]
