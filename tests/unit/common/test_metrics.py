import pytest
from prometheus_client import CollectorRegistry

from queue_relay.common.metrics import MetricsRegistry, MetricsSink


class TestMetricsRegistry:

    def test_metrics_initialization(self, metrics_registry):
        """Test that the three counters start at zero."""
        assert isinstance(metrics_registry, MetricsSink)
        registry = metrics_registry.registry
        assert registry.get_sample_value("events_received_total") == 0
        assert registry.get_sample_value("events_forwarded_total") == 0
        assert registry.get_sample_value("events_forward_error_total") == 0

    def test_increment_received_by_batch_size(self, metrics_registry):
        """Test that received counts add the whole batch at once."""
        metrics_registry.increment_received(5)
        metrics_registry.increment_received(0)
        metrics_registry.increment_received(2)
        assert metrics_registry.registry.get_sample_value("events_received_total") == 7

    def test_increment_outcomes(self, metrics_registry):
        """Test that forwarded and error counters move independently."""
        metrics_registry.increment_forwarded()
        metrics_registry.increment_error()
        metrics_registry.increment_error()
        registry = metrics_registry.registry
        assert registry.get_sample_value("events_forwarded_total") == 1
        assert registry.get_sample_value("events_forward_error_total") == 2

    def test_counters_never_decrease(self, metrics_registry):
        """Test that a negative increment is rejected."""
        with pytest.raises(ValueError):
            metrics_registry.increment_received(-1)

    def test_exposition(self, metrics_registry):
        """Test that the exposition contains the counter samples."""
        metrics_registry.increment_received(3)
        text = metrics_registry.exposition().decode("utf-8")
        assert "events_received_total 3.0" in text
        assert "events_forwarded_total 0.0" in text
        assert "events_forward_error_total 0.0" in text

    def test_default_registry_has_process_metrics(self):
        """Test that an own registry is created with runtime collectors."""
        first = MetricsRegistry()
        second = MetricsRegistry()
        assert first.registry is not second.registry
        assert "python_info" in first.exposition().decode("utf-8")
