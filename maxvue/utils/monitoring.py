"""Rolling processing metrics and alerts for the enhancement pipeline."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ProcessingLog:
    """Single processing call entry."""
    timestamp: datetime
    element_id: Optional[str]
    processing_time_ms: float
    fps: float
    used_fallback: bool = False
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'timestamp': self.timestamp.isoformat(),
            'element_id': self.element_id,
            'processing_time_ms': self.processing_time_ms,
            'fps': self.fps,
            'used_fallback': self.used_fallback,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class Alert:
    """System alert."""
    timestamp: datetime
    severity: AlertSeverity
    category: str
    message: str
    metric_name: Optional[str] = None
    metric_value: Optional[float] = None
    threshold: Optional[float] = None

    def to_dict(self) -> Dict:
        return {
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity.value,
            'category': self.category,
            'message': self.message,
            'metric_name': self.metric_name,
            'metric_value': self.metric_value,
            'threshold': self.threshold
        }


class ProcessingMonitor:
    """
    Real-time monitoring of processing calls.

    Owned by a ProcessingCoordinator; one monitor per coordinator instance.
    """

    # Fallback-rate alerts need a minimum sample before they mean anything.
    MIN_SAMPLES_FOR_RATE = 10

    def __init__(self,
                 window_size: int = 500,
                 latency_threshold_ms: float = 100.0,
                 fallback_rate_threshold: float = 0.5):
        self.window_size = window_size
        self.latency_threshold_ms = latency_threshold_ms
        self.fallback_rate_threshold = fallback_rate_threshold

        # Rolling windows.
        self.entries = deque(maxlen=window_size)
        self.latencies = deque(maxlen=window_size)
        self.fps_values = deque(maxlen=window_size)
        self.fallbacks = deque(maxlen=window_size)

        self.total_calls = 0
        self.total_failures = 0

        self.alerts: List[Alert] = []
        self._lock = threading.Lock()

    def log_processing(self, entry: ProcessingLog):
        """Record a processing call and check for anomalies."""
        with self._lock:
            self.entries.append(entry)
            self.latencies.append(entry.processing_time_ms)
            self.fps_values.append(entry.fps)
            self.fallbacks.append(entry.used_fallback)
            self.total_calls += 1
            if not entry.success:
                self.total_failures += 1

            self._check_alerts(entry)

    def _check_alerts(self, entry: ProcessingLog):
        """Check for alert conditions."""
        if entry.processing_time_ms > self.latency_threshold_ms:
            self._add_alert(
                AlertSeverity.WARNING,
                "latency",
                f"High processing latency: {entry.processing_time_ms:.1f}ms",
                "processing_time_ms",
                entry.processing_time_ms,
                self.latency_threshold_ms
            )

        if len(self.fallbacks) >= self.MIN_SAMPLES_FOR_RATE:
            rate = sum(self.fallbacks) / len(self.fallbacks)
            if rate > self.fallback_rate_threshold:
                self._add_alert(
                    AlertSeverity.WARNING,
                    "fallback",
                    f"Fallback rate high: {rate:.1%}",
                    "fallback_rate",
                    rate,
                    self.fallback_rate_threshold
                )

        if not entry.success:
            self._add_alert(
                AlertSeverity.CRITICAL,
                "failure",
                f"Processing failed for {entry.element_id}: {entry.error}",
                None,
                None,
                None
            )

    def _add_alert(self, severity: AlertSeverity, category: str,
                   message: str, metric_name: Optional[str] = None,
                   metric_value: Optional[float] = None, threshold: Optional[float] = None):
        """Add alert with deduplication."""
        now = datetime.now()
        cutoff = now - timedelta(minutes=5)
        recent_alerts = [a for a in self.alerts
                         if a.timestamp > cutoff and a.category == category]

        if len(recent_alerts) < 3:  # Max 3 alerts per category per 5 minutes.
            self.alerts.append(Alert(
                timestamp=now,
                severity=severity,
                category=category,
                message=message,
                metric_name=metric_name,
                metric_value=metric_value,
                threshold=threshold
            ))
            logger.warning(f"[{severity.value}] {message}")

    def get_summary(self) -> Dict[str, Any]:
        """Get current processing metrics over the rolling window."""
        with self._lock:
            if not self.entries:
                return {
                    'total_calls': 0,
                    'window_calls': 0,
                    'avg_latency_ms': 0.0,
                    'p95_latency_ms': 0.0,
                    'avg_fps': 0.0,
                    'fallback_rate': 0.0,
                    'failure_count': 0,
                    'active_alerts': 0,
                }

            return {
                'total_calls': self.total_calls,
                'window_calls': len(self.entries),
                'avg_latency_ms': float(np.mean(list(self.latencies))),
                'p95_latency_ms': float(np.percentile(list(self.latencies), 95)),
                'avg_fps': float(np.mean(list(self.fps_values))),
                'fallback_rate': sum(self.fallbacks) / len(self.fallbacks),
                'failure_count': self.total_failures,
                'active_alerts': len([a for a in self.alerts if a.timestamp > datetime.now() - timedelta(hours=1)])
            }

    def get_alerts(self,
                   severity: Optional[AlertSeverity] = None,
                   hours: int = 24) -> List[Alert]:
        """Get recent alerts."""
        cutoff = datetime.now() - timedelta(hours=hours)
        alerts = [a for a in self.alerts if a.timestamp > cutoff]

        if severity:
            alerts = [a for a in alerts if a.severity == severity]

        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)

    def reset(self):
        with self._lock:
            self.entries.clear()
            self.latencies.clear()
            self.fps_values.clear()
            self.fallbacks.clear()
            self.alerts.clear()
            self.total_calls = 0
            self.total_failures = 0
