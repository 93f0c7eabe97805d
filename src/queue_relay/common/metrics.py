from abc import ABC, abstractmethod

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)


class MetricsSink(ABC):
    """Receives the relay loop's outcome counts."""

    @abstractmethod
    def increment_received(self, count: int = 1) -> None:
        pass

    @abstractmethod
    def increment_forwarded(self) -> None:
        pass

    @abstractmethod
    def increment_error(self) -> None:
        pass


class MetricsRegistry(MetricsSink):
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry=None):
        if registry is None:
            # Own registry, with the runtime collectors the default one carries
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
            GCCollector(registry=registry)
        self.registry = registry

        self.events_received = Counter(
            "events_received",
            "The total number of events received",
            registry=self.registry,
        )
        self.events_forwarded = Counter(
            "events_forwarded",
            "The total number of events forwarded successfully",
            registry=self.registry,
        )
        self.events_forward_error = Counter(
            "events_forward_error",
            "The total number of events that ended in error on forward",
            registry=self.registry,
        )

    def increment_received(self, count: int = 1) -> None:
        if count:
            self.events_received.inc(count)

    def increment_forwarded(self) -> None:
        self.events_forwarded.inc()

    def increment_error(self) -> None:
        self.events_forward_error.inc()

    def exposition(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)
