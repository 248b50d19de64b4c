"""
In-memory observability metrics.

Tracks:
- Latency percentiles per operation (search, get_product, check_stock, syncs)
- Hit/miss counts per cache tier
- Error counts per operation
"""

import statistics
import threading
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Dict, Optional


class MetricsCollector:
    """
    In-memory metrics collector.

    Counters are updated from worker threads as well as the event loop, so
    mutations go through a lock.
    """

    def __init__(self, window_size: int = 1000):
        """
        Args:
            window_size: Number of recent latency samples kept per operation
        """
        self.window_size = window_size
        self._lock = threading.Lock()

        # Latency tracking (sliding window)
        self.latencies: Dict[str, deque] = defaultdict(lambda: deque(maxlen=window_size))

        # Cache metrics, keyed by tier (redis_cache, db_cache, database, real_time_api)
        self.cache_hits: Dict[str, int] = defaultdict(int)
        self.cache_misses: Dict[str, int] = defaultdict(int)

        self.request_counts: Dict[str, int] = defaultdict(int)
        self.error_counts: Dict[str, int] = defaultdict(int)

        self.start_time = datetime.now(timezone.utc)
        self.last_reset = self.start_time

    def record_latency(self, operation: str, latency_ms: float):
        with self._lock:
            self.latencies[operation].append(latency_ms)
            self.request_counts[operation] += 1

    def record_cache_hit(self, tier: str):
        with self._lock:
            self.cache_hits[tier] += 1

    def record_cache_miss(self, tier: str):
        with self._lock:
            self.cache_misses[tier] += 1

    def record_error(self, operation: str):
        with self._lock:
            self.error_counts[operation] += 1

    def get_percentile(self, operation: str, percentile: float) -> Optional[float]:
        """
        Latency percentile for an operation, or None with fewer than 10 samples.
        """
        values = sorted(self.latencies.get(operation, ()))
        if len(values) < 10:
            return None
        index = min(int(len(values) * (percentile / 100.0)), len(values) - 1)
        return values[index]

    def get_cache_hit_rate(self, tier: str) -> float:
        """Hit rate for one tier as a percentage."""
        total = self.cache_hits[tier] + self.cache_misses[tier]
        if total == 0:
            return 0.0
        return (self.cache_hits[tier] / total) * 100.0

    def get_cache_summary(self) -> Dict[str, Dict[str, float]]:
        tiers = set(self.cache_hits) | set(self.cache_misses)
        return {
            tier: {
                "hits": self.cache_hits[tier],
                "misses": self.cache_misses[tier],
                "hit_rate_pct": round(self.get_cache_hit_rate(tier), 2),
            }
            for tier in sorted(tiers)
        }

    def get_summary(self) -> Dict:
        """Summary of all metrics for the status surface."""
        summary = {
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
            "cache": self.get_cache_summary(),
            "operations": {},
        }

        for operation, count in list(self.request_counts.items()):
            op_metrics = {
                "total": count,
                "errors": self.error_counts[operation],
            }
            for pct in (50, 95, 99):
                value = self.get_percentile(operation, pct)
                if value is not None:
                    op_metrics[f"latency_p{pct}_ms"] = round(value, 2)
            if self.latencies[operation]:
                op_metrics["latency_avg_ms"] = round(statistics.mean(self.latencies[operation]), 2)
            summary["operations"][operation] = op_metrics

        return summary

    def reset(self):
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self.latencies.clear()
            self.cache_hits.clear()
            self.cache_misses.clear()
            self.request_counts.clear()
            self.error_counts.clear()
            self.last_reset = datetime.now(timezone.utc)
