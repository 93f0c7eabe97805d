from enum import Enum
from typing import List

from loguru import logger

from queue_relay.common.metrics import MetricsSink
from queue_relay.common.models import AckPolicy, ForwardOutcome, QueueMessage
from queue_relay.common.queue import QueueClient
from queue_relay.forwarder.client import WebhookForwarder


DEFAULT_BATCH_SIZE = 5


class RelayState(Enum):
    IDLE = "idle"
    RECEIVING = "receiving"
    FORWARDING = "forwarding"
    ACKNOWLEDGING = "acknowledging"
    FATAL_QUEUE_ERROR = "fatal_queue_error"
    FATAL_ACK_ERROR = "fatal_ack_error"


FATAL_STATES = (RelayState.FATAL_QUEUE_ERROR, RelayState.FATAL_ACK_ERROR)


class RelayError(Exception):
    pass


class FatalQueueError(RelayError):
    """Receiving from the queue failed; the relay cannot continue."""


class FatalAckError(RelayError):
    """Acknowledging a message failed; the relay cannot continue."""


class RelayLoop:
    """Receive a batch, forward each message, acknowledge it, repeat.

    Messages are forwarded one at a time. Whether a message is removed from
    the queue after its forward attempt is decided by ``ack_policy`` alone;
    with the default ``AckPolicy.ALWAYS`` a failed forward still removes the
    message. Queue and acknowledgment failures are fatal and move the loop
    into a terminal state.
    """

    def __init__(
        self,
        queue_client: QueueClient,
        forwarder: WebhookForwarder,
        metrics: MetricsSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        ack_policy: AckPolicy = AckPolicy.ALWAYS,
    ):
        self.queue_client = queue_client
        self.forwarder = forwarder
        self.metrics = metrics
        self.batch_size = batch_size
        self.ack_policy = ack_policy
        self.state = RelayState.IDLE

    async def receive(self) -> List[QueueMessage]:
        self.state = RelayState.RECEIVING
        try:
            messages = await self.queue_client.receive_batch(self.batch_size)
        except Exception as e:
            self.state = RelayState.FATAL_QUEUE_ERROR
            raise FatalQueueError(f"Error retrieving messages: {e}") from e

        logger.info(f"Retrieved {len(messages)} messages")
        self.metrics.increment_received(len(messages))
        return messages

    async def process_message(self, message: QueueMessage) -> ForwardOutcome:
        self.state = RelayState.FORWARDING
        attempt = self.forwarder.build_attempt(message.body)
        outcome = await self.forwarder.forward(attempt)

        self.state = RelayState.ACKNOWLEDGING
        if self.ack_policy.should_acknowledge(outcome):
            try:
                await self.queue_client.acknowledge(message)
            except Exception as e:
                self.state = RelayState.FATAL_ACK_ERROR
                raise FatalAckError(
                    f"Error completing message {message.message_id}: {e}"
                ) from e
        else:
            logger.warning(
                f"Leaving message {message.message_id} on the queue after {outcome.value}"
            )

        if outcome == ForwardOutcome.FORWARDED:
            self.metrics.increment_forwarded()
        else:
            self.metrics.increment_error()
        return outcome

    async def run_once(self) -> List[ForwardOutcome]:
        """Run a single receive/forward/acknowledge cycle."""
        if self.state in FATAL_STATES:
            raise RuntimeError(f"Relay loop stopped in state {self.state.value}")

        messages = await self.receive()
        outcomes = []
        for message in messages:
            outcomes.append(await self.process_message(message))

        self.state = RelayState.IDLE
        return outcomes

    async def run(self):
        logger.info(f"Starting relay to {self.forwarder.target_url}")
        while True:
            await self.run_once()
