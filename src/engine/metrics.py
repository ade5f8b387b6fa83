"""
Service metrics for the detection engine.

Tracks per-process counters and a bounded latency window:
- total requests, flagged events (risk above LOW), rejected events, errors
- events per risk level
- latency percentiles (p50, p95, p99)
- requests per second since start
"""

import threading
import time
from collections import deque
from typing import Dict

import numpy as np

from src.core.schema import RiskLevel


class ServiceMetrics:

    def __init__(self):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.flagged_events = 0
        self.rejected_events = 0
        self.error_count = 0
        self.degraded_events = 0
        self.level_counts: Dict[str, int] = {level.value: 0 for level in RiskLevel}
        self.latencies = deque(maxlen=10000)  # Keep last 10K latencies
        self.start_time = time.time()

    def record_request(self, latency_ms: float, level: RiskLevel, degraded: bool = False):
        """Record one scored event."""
        with self._lock:
            self.total_requests += 1
            self.latencies.append(latency_ms)
            self.level_counts[level.value] += 1
            if level != RiskLevel.LOW:
                self.flagged_events += 1
            if degraded:
                self.degraded_events += 1

    def record_rejected(self):
        """Record an event rejected by validation."""
        with self._lock:
            self.total_requests += 1
            self.rejected_events += 1

    def record_error(self):
        """Record an event answered with the system-error fallback."""
        with self._lock:
            self.total_requests += 1
            self.error_count += 1

    def get_summary(self) -> Dict:
        with self._lock:
            latencies = np.array(list(self.latencies))
            total = self.total_requests
            summary = {
                "total_requests": total,
                "flagged_events": self.flagged_events,
                "flag_rate": self.flagged_events / max(total, 1),
                "rejected_events": self.rejected_events,
                "degraded_events": self.degraded_events,
                "error_count": self.error_count,
                "risk_levels": dict(self.level_counts),
                "requests_per_second": float(total / max(time.time() - self.start_time, 1)),
            }

        if latencies.size == 0:
            summary.update({
                "avg_latency_ms": 0.0,
                "p50_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "p99_latency_ms": 0.0,
            })
        else:
            summary.update({
                "avg_latency_ms": float(np.mean(latencies)),
                "p50_latency_ms": float(np.percentile(latencies, 50)),
                "p95_latency_ms": float(np.percentile(latencies, 95)),
                "p99_latency_ms": float(np.percentile(latencies, 99)),
            })

        return summary
