"""Metrics service for tracking API performance.

Singleton service counting inference calls with their latency, and
incremental updates by kind.
"""

import threading
from collections import Counter
from typing import Dict


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters for inference latency and applied updates.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._updates: Counter = Counter()
        self._reset_latency()
        self._initialized = True

    def _reset_latency(self) -> None:
        self._inference_count = 0
        self._total_latency_ms = 0.0
        self._min_latency_ms = float("inf")
        self._max_latency_ms = 0.0

    def record_inference(self, latency_ms: float) -> None:
        """Record a scoring or recommendation call with its latency.

        Args:
            latency_ms: Latency in milliseconds
        """
        with self._lock:
            self._inference_count += 1
            self._total_latency_ms += latency_ms
            self._min_latency_ms = min(self._min_latency_ms, latency_ms)
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)

    def record_update(self, kind: str) -> None:
        """Count one applied incremental update, e.g. ``"feedback_added"``."""
        with self._lock:
            self._updates[kind] += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with metrics including:
            - inference_count: Total number of inference calls
            - average_latency_ms: Average latency in milliseconds
            - min_latency_ms: Minimum latency observed
            - max_latency_ms: Maximum latency observed
            - updates: Applied updates per kind
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._inference_count
                if self._inference_count > 0
                else 0.0
            )
            min_latency = 0.0 if self._inference_count == 0 else self._min_latency_ms

            return {
                "inference_count": self._inference_count,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(min_latency, 2),
                "max_latency_ms": round(self._max_latency_ms, 2),
                "updates": dict(self._updates),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._reset_latency()
            self._updates.clear()


# Global singleton instance
metrics_service = MetricsService()
