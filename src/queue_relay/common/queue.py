import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from loguru import logger

from queue_relay.common.config import (
    AWSSQSConfig,
    AzureServiceBusConfig,
    GCPPubSubConfig,
    QueueType,
    RelayConfig,
)
from queue_relay.common.models import QueueMessage


_NAMESPACE_RE = re.compile(r"sb://([^;/]+)")

# SQS never returns more than this per receive call
SQS_MAX_BATCH = 10


class QueueClient(ABC):
    @abstractmethod
    async def receive_batch(self, max_count: int) -> List[QueueMessage]:
        pass

    @abstractmethod
    async def acknowledge(self, message: QueueMessage) -> None:
        pass

    async def close(self) -> None:
        pass


def namespace_from_connection_string(connection_string: str) -> Optional[str]:
    match = _NAMESPACE_RE.search(connection_string)
    return match.group(1) if match else None


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _encode_value(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    return json.dumps(value, default=_json_default).encode("utf-8")


class AzureServiceBusClient(QueueClient):
    def __init__(self, config: AzureServiceBusConfig):
        try:
            from azure.servicebus.aio import ServiceBusClient
            from azure.servicebus.amqp import AmqpMessageBodyType
        except ImportError:
            raise ImportError(
                "Azure Service Bus client not installed. "
                "Install it with: pip install azure-servicebus"
            )

        self._client_class = ServiceBusClient
        self._body_types = AmqpMessageBodyType
        self.connection_string = config.connection_string
        self.queue_name = config.queue_name
        self.max_wait_time = config.max_wait_time
        self.namespace = namespace_from_connection_string(config.connection_string)

        # Opened on first receive, inside the running event loop
        self.client = None
        self.receiver = None

    async def _get_receiver(self):
        if self.receiver is None:
            logger.info(f"Connect to service bus: {self.namespace}")
            self.client = self._client_class.from_connection_string(self.connection_string)
            self.receiver = self.client.get_queue_receiver(queue_name=self.queue_name)
            logger.info(f"Initialized Azure Service Bus receiver for queue {self.queue_name}")
        return self.receiver

    def message_body(self, message: Any) -> bytes:
        """Flatten a received message body into the bytes that get forwarded.

        Data bodies are the concatenation of their sections. Value bodies are
        passed through when they are bytes or text and JSON encoded otherwise,
        sequence bodies are JSON encoded as a list. A body that cannot be
        encoded is forwarded empty rather than failing the whole batch.
        """
        try:
            if message.body_type == self._body_types.DATA:
                return b"".join(message.body)
            if message.body_type == self._body_types.SEQUENCE:
                return _encode_value(list(message.body))
            return _encode_value(message.body)
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Could not encode {message.body_type} body of message "
                f"{message.message_id}, forwarding it empty: {e}"
            )
            return b""

    async def receive_batch(self, max_count: int) -> List[QueueMessage]:
        try:
            receiver = await self._get_receiver()
            received = await receiver.receive_messages(
                max_message_count=max_count,
                max_wait_time=self.max_wait_time,
            )
        except Exception as e:
            logger.error(f"Error receiving messages from {self.queue_name}: {e}")
            raise

        return [
            QueueMessage(
                body=self.message_body(message),
                message_id=str(message.message_id) if message.message_id else None,
                delivery_handle=message,
            )
            for message in received
        ]

    async def acknowledge(self, message: QueueMessage) -> None:
        try:
            receiver = await self._get_receiver()
            await receiver.complete_message(message.delivery_handle)
        except Exception as e:
            logger.error(f"Error completing message {message.message_id}: {e}")
            raise
        logger.debug(f"Completed message {message.message_id} on {self.queue_name}")

    async def close(self) -> None:
        if self.receiver is not None:
            await self.receiver.close()
        if self.client is not None:
            await self.client.close()
        self.receiver = None
        self.client = None


class AWSSQSClient(QueueClient):
    def __init__(self, config: AWSSQSConfig):
        try:
            import boto3
        except ImportError:
            raise ImportError(
                "AWS SQS client not installed. "
                "Install it with: pip install boto3"
            )

        session_kwargs = {}
        if config.access_key_id and config.secret_access_key:
            session_kwargs.update({
                "aws_access_key_id": config.access_key_id,
                "aws_secret_access_key": config.secret_access_key,
            })

        session = boto3.session.Session(**session_kwargs)

        client_kwargs = {"region_name": config.region_name}
        if config.role_arn:
            sts_client = session.client("sts", **client_kwargs)
            assumed_role = sts_client.assume_role(
                RoleArn=config.role_arn,
                RoleSessionName="queue-relay-session"
            )
            client_kwargs.update({
                "aws_access_key_id": assumed_role["Credentials"]["AccessKeyId"],
                "aws_secret_access_key": assumed_role["Credentials"]["SecretAccessKey"],
                "aws_session_token": assumed_role["Credentials"]["SessionToken"],
            })

        self.sqs = session.client("sqs", **client_kwargs)
        self.queue_url = config.queue_url
        self.wait_time_seconds = config.wait_time_seconds

        logger.info(f"Initialized AWS SQS client for queue {self.queue_url}")

    async def receive_batch(self, max_count: int) -> List[QueueMessage]:
        loop = asyncio.get_running_loop()
        try:
            # boto3 is synchronous, keep the long poll off the event loop
            response = await loop.run_in_executor(
                None,
                lambda: self.sqs.receive_message(
                    QueueUrl=self.queue_url,
                    MaxNumberOfMessages=min(max_count, SQS_MAX_BATCH),
                    WaitTimeSeconds=self.wait_time_seconds,
                ),
            )
        except Exception as e:
            logger.error(f"Error receiving messages from {self.queue_url}: {e}")
            raise

        return [
            QueueMessage(
                body=message["Body"].encode("utf-8"),
                message_id=message.get("MessageId"),
                delivery_handle=message["ReceiptHandle"],
            )
            for message in response.get("Messages", [])
        ]

    async def acknowledge(self, message: QueueMessage) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.sqs.delete_message(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=message.delivery_handle,
                ),
            )
        except Exception as e:
            logger.error(f"Error deleting message {message.message_id}: {e}")
            raise
        logger.debug(f"Deleted message {message.message_id} from {self.queue_url}")


class GCPPubSubClient(QueueClient):
    def __init__(self, config: GCPPubSubConfig):
        try:
            from google.cloud import pubsub_v1
        except ImportError:
            raise ImportError(
                "Google Cloud Pub/Sub client not installed. "
                "Install it with: pip install google-cloud-pubsub"
            )

        self.subscriber = pubsub_v1.SubscriberClient()
        self.subscription_path = self.subscriber.subscription_path(
            config.project_id, config.subscription_id
        )

        logger.info(f"Initialized GCP Pub/Sub client for {self.subscription_path}")

    async def receive_batch(self, max_count: int) -> List[QueueMessage]:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.subscriber.pull(
                    request={
                        "subscription": self.subscription_path,
                        "max_messages": max_count,
                    }
                ),
            )
        except Exception as e:
            logger.error(f"Error receiving messages from {self.subscription_path}: {e}")
            raise

        return [
            QueueMessage(
                body=bytes(received.message.data),
                message_id=received.message.message_id,
                delivery_handle=received.ack_id,
            )
            for received in response.received_messages
        ]

    async def acknowledge(self, message: QueueMessage) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.subscriber.acknowledge(
                    request={
                        "subscription": self.subscription_path,
                        "ack_ids": [message.delivery_handle],
                    }
                ),
            )
        except Exception as e:
            logger.error(f"Error acknowledging message {message.message_id}: {e}")
            raise
        logger.debug(f"Acknowledged message {message.message_id} on {self.subscription_path}")

    async def close(self) -> None:
        self.subscriber.close()


def create_queue_client(config: RelayConfig) -> QueueClient:
    if config.queue_type == QueueType.AZURE_SERVICE_BUS:
        if not config.azure_config:
            raise ValueError(
                "Azure Service Bus selected but no Azure configuration provided"
            )
        return AzureServiceBusClient(config.azure_config)
    elif config.queue_type == QueueType.AWS_SQS:
        if not config.aws_config:
            raise ValueError("AWS SQS selected but no AWS configuration provided")
        return AWSSQSClient(config.aws_config)
    elif config.queue_type == QueueType.GCP_PUBSUB:
        if not config.gcp_config:
            raise ValueError("GCP PubSub selected but no GCP configuration provided")
        return GCPPubSubClient(config.gcp_config)
    else:
        raise ValueError(f"Unsupported queue type: {config.queue_type}")
