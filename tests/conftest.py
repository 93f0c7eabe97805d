from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from queue_relay.admin.server import create_app
from queue_relay.common.config import (
    AWSSQSConfig,
    AzureServiceBusConfig,
    GCPPubSubConfig,
    QueueType,
    RelayConfig,
)
from queue_relay.common.metrics import MetricsRegistry
from queue_relay.common.models import QueueMessage
from queue_relay.common.queue import QueueClient


class MockQueueClient(QueueClient):
    """Mock implementation of QueueClient for testing."""

    def __init__(self):
        self.available_batches = []
        self.acknowledged_messages = []

        # Create mocks that we can use to override behavior in tests
        self._receive_batch_mock = MagicMock(side_effect=self._receive_batch_impl)
        self._acknowledge_mock = MagicMock(side_effect=self._acknowledge_impl)
        self.close = AsyncMock()

    async def receive_batch(self, max_count):
        """Implementation of abstract method that delegates to a mockable method."""
        return await self._receive_batch_mock(max_count)

    async def acknowledge(self, message):
        """Implementation of abstract method that delegates to a mockable method."""
        return await self._acknowledge_mock(message)

    async def _receive_batch_impl(self, max_count):
        """Actual implementation for receive_batch."""
        if not self.available_batches:
            return []
        batch = self.available_batches.pop(0)
        return batch[:max_count]

    async def _acknowledge_impl(self, message):
        """Actual implementation for acknowledge."""
        self.acknowledged_messages.append(message)

    def add_batch_to_queue(self, messages):
        """Helper method to queue up the next batch returned by receive_batch."""
        self.available_batches.append(list(messages))


def make_messages(count):
    return [
        QueueMessage(
            body=f'{{"event": "test", "seq": {i}}}'.encode("utf-8"),
            message_id=f"message-{i}",
            delivery_handle=f"handle-{i}",
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_queue_client():
    """Fixture that provides a mock queue client."""
    return MockQueueClient()


@pytest.fixture
def sample_queue_message():
    """Fixture that provides a sample queue message."""
    return QueueMessage(
        body=b'{"repository": {"name": "test-repo"}, "ref": "refs/heads/main"}',
        message_id="test-message-id",
        delivery_handle="test-handle",
    )


@pytest.fixture
def message_factory():
    """Fixture that provides a factory for batches of queue messages."""
    return make_messages


@pytest.fixture
def sample_messages():
    """Fixture that provides three queue messages."""
    return make_messages(3)


@pytest.fixture
def metrics_registry():
    """Fixture that provides a metrics registry backed by an isolated registry."""
    return MetricsRegistry(registry=CollectorRegistry())


@pytest.fixture
def azure_config():
    """Fixture that provides a sample Azure Service Bus configuration."""
    return AzureServiceBusConfig(
        connection_string=(
            "Endpoint=sb://test-namespace.servicebus.windows.net/;"
            "SharedAccessKeyName=RootManageSharedAccessKey;SharedAccessKey=secret"
        ),
        queue_name="test-queue",
    )


@pytest.fixture
def aws_config():
    """Fixture that provides a sample AWS configuration."""
    return AWSSQSConfig(
        region_name="us-west-2",
        queue_url="https://sqs.us-west-2.amazonaws.com/123456789012/test-queue",
    )


@pytest.fixture
def gcp_config():
    """Fixture that provides a sample GCP configuration."""
    return GCPPubSubConfig(
        project_id="test-project",
        subscription_id="test-subscription",
    )


@pytest.fixture
def relay_config(azure_config):
    """Fixture that provides a sample relay configuration."""
    return RelayConfig(
        log_level="INFO",
        queue_type=QueueType.AZURE_SERVICE_BUS,
        azure_config=azure_config,
        webhook_url="http://internal-service:8080/webhook",
        bearer_token="test-token",
    )


@pytest.fixture
def admin_app(relay_config, metrics_registry):
    """Fixture that provides a configured admin FastAPI app."""
    return create_app(relay_config, metrics_registry)


@pytest.fixture
def admin_client(admin_app):
    """Fixture that provides a test client for the admin API."""
    return TestClient(admin_app)


@pytest.fixture
def mock_http_session():
    """Patch aiohttp so the forwarder's shared session is a mock.

    Yields a ``respond`` helper: pass it status codes or exceptions, one per
    expected POST, in order.
    """
    with patch("aiohttp.ClientSession") as mock_session_class, patch(
        "aiohttp.TCPConnector"
    ) as mock_connector_class:
        mock_session = MagicMock()
        mock_session.closed = False
        mock_session.close = AsyncMock()
        mock_session_class.return_value = mock_session

        def respond(*results):
            side_effects = []
            for result in results:
                if isinstance(result, BaseException):
                    side_effects.append(result)
                    continue

                mock_response = MagicMock()
                mock_response.status = result
                mock_response.text = AsyncMock(return_value=f"status {result}")

                # Create a context manager mock
                cm = MagicMock()
                cm.__aenter__ = AsyncMock(return_value=mock_response)
                cm.__aexit__ = AsyncMock(return_value=None)
                side_effects.append(cm)
            mock_session.post.side_effect = side_effects
            return mock_session

        respond.session = mock_session
        respond.session_class = mock_session_class
        respond.connector_class = mock_connector_class
        yield respond
