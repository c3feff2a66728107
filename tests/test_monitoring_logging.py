"""Tests for processing monitor, timing stats, fallback decorator and logging setup"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
import time
from datetime import datetime

import pytest

from maxvue.utils.error_handling import with_fallback, with_timeout
from maxvue.utils.logging_config import get_logger, setup_logging
from maxvue.utils.monitoring import AlertSeverity, ProcessingLog, ProcessingMonitor
from maxvue.utils.performance import (
    MAX_SAMPLES_PER_FUNCTION,
    get_performance_stats,
    reset_performance_stats,
    timed,
)


def make_entry(latency: float = 10.0, fallback: bool = False, success: bool = True) -> ProcessingLog:
    return ProcessingLog(
        timestamp=datetime.now(),
        element_id='el',
        processing_time_ms=latency,
        fps=1000.0 / latency,
        used_fallback=fallback,
        success=success,
        error=None if success else 'invalid_settings',
    )


def test_monitor_summary():
    print("\nMonitor Test 1: Summary")
    monitor = ProcessingMonitor(window_size=4)
    assert monitor.get_summary()['total_calls'] == 0

    for latency in [10.0, 20.0, 30.0, 40.0, 50.0]:
        monitor.log_processing(make_entry(latency, fallback=latency > 35))

    summary = monitor.get_summary()
    assert summary['total_calls'] == 5
    assert summary['window_calls'] == 4, "Window should be bounded"
    assert summary['avg_latency_ms'] == pytest.approx(35.0)
    assert summary['fallback_rate'] == pytest.approx(0.5)
    assert summary['failure_count'] == 0
    print("  Summary: PASSED")


def test_monitor_alerts_deduplicated():
    """Latency alerts fire above threshold, at most three per category."""
    print("\nMonitor Test 2: Alerts")
    monitor = ProcessingMonitor(latency_threshold_ms=100.0)
    for _ in range(5):
        monitor.log_processing(make_entry(latency=250.0))

    latency_alerts = [a for a in monitor.get_alerts() if a.category == 'latency']
    assert len(latency_alerts) == 3
    assert all(a.severity == AlertSeverity.WARNING for a in latency_alerts)
    assert latency_alerts[0].threshold == 100.0
    print("  Alerts: PASSED")


def test_monitor_fallback_rate_needs_samples():
    monitor = ProcessingMonitor(fallback_rate_threshold=0.5)
    for _ in range(ProcessingMonitor.MIN_SAMPLES_FOR_RATE - 1):
        monitor.log_processing(make_entry(fallback=True))
    assert not [a for a in monitor.get_alerts() if a.category == 'fallback']

    monitor.log_processing(make_entry(fallback=True))
    assert [a for a in monitor.get_alerts() if a.category == 'fallback']


def test_monitor_failures_are_critical():
    monitor = ProcessingMonitor()
    monitor.log_processing(make_entry(success=False))
    critical = monitor.get_alerts(severity=AlertSeverity.CRITICAL)
    assert len(critical) == 1 and critical[0].category == 'failure'
    assert monitor.get_summary()['failure_count'] == 1

    monitor.reset()
    assert monitor.get_summary()['total_calls'] == 0
    assert monitor.get_alerts() == []


def test_timed_records_stats():
    reset_performance_stats()

    @timed(threshold=10.0)
    def stage():
        time.sleep(0.01)
        return 7

    assert stage() == 7
    assert stage() == 7
    stats = get_performance_stats()['stage']
    assert stats['count'] == 2
    assert stats['min'] >= 0.005
    reset_performance_stats()
    assert get_performance_stats() == {}


def test_timed_samples_are_bounded():
    """Long-running pipelines keep only the most recent samples per function."""
    reset_performance_stats()

    @timed(threshold=10.0)
    def frame_stage():
        return None

    for _ in range(MAX_SAMPLES_PER_FUNCTION + 50):
        frame_stage()
    assert get_performance_stats()['frame_stage']['count'] == MAX_SAMPLES_PER_FUNCTION
    reset_performance_stats()


def test_with_fallback():
    @with_fallback(fallback_value=-1)
    def explode():
        raise RuntimeError("boom")

    assert explode() == -1

    @with_fallback(fallback_func=lambda x: x * 10)
    def half(x):
        if x == 0:
            raise ZeroDivisionError
        return 1 / x

    assert half(2) == 0.5
    assert half(0) == 0

    @with_fallback(fallback_value='safe', fallback_func=lambda: 1 / 0)
    def double_failure():
        raise RuntimeError("boom")

    assert double_failure() == 'safe', "Failing fallback should return fallback_value"


def test_with_timeout_logs_slow_calls(caplog):
    @with_timeout(timeout_ms=1.0)
    def slow():
        time.sleep(0.02)
        return 'done'

    with caplog.at_level(logging.WARNING, logger='maxvue.utils.error_handling'):
        assert slow() == 'done'
    assert any('exceeded' in r.message for r in caplog.records)


def test_setup_logging(tmp_path):
    """Console and rotating file handlers are installed; the log file receives records."""
    print("\nLogging Test 1: Setup")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging(log_level="DEBUG", log_dir=tmp_path)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        get_logger("maxvue.test").info("pipeline ready")
        for handler in root.handlers:
            handler.flush()
        log_file = tmp_path / "maxvue.log"
        assert log_file.exists()
        assert "pipeline ready" in log_file.read_text()

        with pytest.raises(ValueError):
            setup_logging(log_level="LOUD", log_dir=tmp_path)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
    print("  Setup: PASSED")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
