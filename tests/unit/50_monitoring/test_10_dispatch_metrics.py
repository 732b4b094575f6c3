from prometheus_client import CollectorRegistry

from ses_dispatcher.prometheus import DispatchMetrics


def test_dispatch_metrics_counters_and_gauge():
    """Test basic counter and gauge operations."""
    metrics = DispatchMetrics()

    metrics.inc_sent("noreply@example.com")
    metrics.inc_error()
    metrics.inc_throttled()
    metrics.inc_observer_error()
    metrics.set_pending(3)

    output = metrics.generate_latest().decode()
    assert 'sesd_sent_total{sender="noreply@example.com"} 1.0' in output
    assert 'sesd_errors_total{sender="default"} 1.0' in output
    assert "sesd_throttled_total 1.0" in output
    assert "sesd_observer_errors_total 1.0" in output
    assert "sesd_pending_messages 3.0" in output


def test_dispatch_metrics_custom_registry():
    """Test metrics with custom registry."""
    registry = CollectorRegistry()
    metrics = DispatchMetrics(registry=registry)

    assert metrics.registry is registry
    metrics.inc_sent("a@example.com")
    assert registry.get_sample_value("sesd_sent_total", {"sender": "a@example.com"}) == 1.0


def test_separate_instances_do_not_share_state():
    """Test two dispatchers can each own a metrics collector."""
    first = DispatchMetrics()
    second = DispatchMetrics()

    first.inc_throttled()
    first.inc_throttled()

    assert first.registry.get_sample_value("sesd_throttled_total") == 2.0
    assert second.registry.get_sample_value("sesd_throttled_total") == 0.0
