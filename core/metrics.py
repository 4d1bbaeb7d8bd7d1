"""
Performance Monitoring and Metrics Collection.

In-memory metrics for JukeBoxd: request timings recorded by the performance
middleware, timings of instrumented service operations (feed assembly, catalog
lookups), counters, gauges and host statistics gathered with psutil.

Key Components:
- `MetricsCollector`: Central store. Aggregates request and operation timings
  over a time window and reports system statistics.
- `RequestMetrics` / `PerformanceMetric`: Records kept by the collector.
- `async_timer` / `PerformanceTimer`: Context managers timing a block of code.
- `@timed`: Decorator applying a timer to a sync or async function.
- `get_metrics_collector` / `init_metrics_collector`: Global instance wiring.

The `/monitoring/metrics` endpoint exposes `MetricsCollector.get_stats()`.
"""

import time
import asyncio
import functools
import threading
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import psutil

from core.logging_config import get_logger

logger = get_logger(__name__)

HISTOGRAM_SIZE = 1000


@dataclass
class PerformanceMetric:
    """Individual performance metric"""

    name: str
    value: float
    timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)
    unit: str = "ms"


@dataclass
class RequestMetrics:
    """Request-level performance metrics"""

    endpoint: str
    method: str
    status_code: int
    duration_ms: float
    timestamp: datetime
    ip_address: Optional[str] = None


def _percentile(sorted_values: List[float], fraction: float) -> float:
    idx = int(len(sorted_values) * fraction)
    return sorted_values[idx] if idx < len(sorted_values) else 0


class MetricsCollector:
    """Collects and aggregates performance metrics"""

    def __init__(self, max_metrics: int = 10000):
        self.max_metrics = max_metrics
        self.metrics: deque = deque(maxlen=max_metrics)
        self.request_metrics: deque = deque(maxlen=max_metrics)
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, float] = {}
        self.histograms: Dict[str, List[float]] = defaultdict(list)
        self.started_at = datetime.now(timezone.utc)
        self._lock = threading.Lock()
        self._system_metrics_task: Optional[asyncio.Task] = None

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        unit: str = "ms",
    ):
        """Record a performance metric"""
        metric = PerformanceMetric(
            name=name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            tags=tags or {},
            unit=unit,
        )

        with self._lock:
            self.metrics.append(metric)
            self._append_histogram(name, value)

        logger.debug(
            f"Recorded metric: {name}={value}{unit}",
            extra={"metric_name": name, "value": value, "unit": unit},
        )

    def record_request(self, metrics: RequestMetrics):
        """Record request-level metrics"""
        with self._lock:
            self.request_metrics.append(metrics)

            self.counters["requests_total"] += 1
            self.counters[f"requests_{metrics.method.lower()}"] += 1
            self.counters[f"responses_{metrics.status_code}"] += 1

            self._append_histogram("request_duration", metrics.duration_ms)

    def increment_counter(
        self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None
    ):
        """Increment a counter metric"""
        with self._lock:
            self.counters[self._tagged_key(name, tags)] += value

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        """Set a gauge metric"""
        with self._lock:
            self.gauges[self._tagged_key(name, tags)] = value

    def get_stats(self, time_window_minutes: int = 5) -> Dict[str, Any]:
        """Get aggregated statistics"""
        cutoff_time = datetime.now(timezone.utc) - timedelta(minutes=time_window_minutes)

        with self._lock:
            recent_requests = [
                req for req in self.request_metrics if req.timestamp >= cutoff_time
            ]
            recent_metrics = [
                metric for metric in self.metrics if metric.timestamp >= cutoff_time
            ]
            counters = dict(self.counters)
            gauges = dict(self.gauges)

        return {
            "time_window_minutes": time_window_minutes,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(
                (datetime.now(timezone.utc) - self.started_at).total_seconds(), 1
            ),
            "requests": self._calculate_request_stats(recent_requests),
            "metrics": self._calculate_metric_stats(recent_metrics),
            "system": self.get_system_stats(),
            "counters": counters,
            "gauges": gauges,
        }

    def _append_histogram(self, name: str, value: float) -> None:
        self.histograms[name].append(value)
        if len(self.histograms[name]) > HISTOGRAM_SIZE:
            self.histograms[name] = self.histograms[name][-HISTOGRAM_SIZE:]

    @staticmethod
    def _tagged_key(name: str, tags: Optional[Dict[str, str]]) -> str:
        if not tags:
            return name
        tag_str = ":".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}:{tag_str}"

    def _calculate_request_stats(
        self, requests: List[RequestMetrics]
    ) -> Dict[str, Any]:
        if not requests:
            return {
                "total": 0,
                "avg_duration_ms": 0,
                "min_duration_ms": 0,
                "max_duration_ms": 0,
                "p95_duration_ms": 0,
                "p99_duration_ms": 0,
                "requests_per_second": 0,
                "status_codes": {},
                "endpoints": {},
            }

        durations = sorted(req.duration_ms for req in requests)

        status_codes = defaultdict(int)
        endpoints = defaultdict(int)
        for req in requests:
            status_codes[str(req.status_code)] += 1
            endpoints[f"{req.method} {req.endpoint}"] += 1

        time_span = (requests[-1].timestamp - requests[0].timestamp).total_seconds()
        rps = len(requests) / max(time_span, 1)

        return {
            "total": len(requests),
            "avg_duration_ms": sum(durations) / len(durations),
            "min_duration_ms": durations[0],
            "max_duration_ms": durations[-1],
            "p95_duration_ms": _percentile(durations, 0.95),
            "p99_duration_ms": _percentile(durations, 0.99),
            "requests_per_second": round(rps, 2),
            "status_codes": dict(status_codes),
            "endpoints": dict(endpoints),
        }

    def _calculate_metric_stats(
        self, metrics: List[PerformanceMetric]
    ) -> Dict[str, Any]:
        by_name = defaultdict(list)
        for metric in metrics:
            by_name[metric.name].append(metric.value)

        stats = {}
        for name, values in by_name.items():
            values.sort()
            stats[name] = {
                "count": len(values),
                "avg": sum(values) / len(values),
                "min": values[0],
                "max": values[-1],
                "p95": _percentile(values, 0.95),
                "p99": _percentile(values, 0.99),
            }
        return stats

    def get_system_stats(self) -> Dict[str, Any]:
        """Get current system statistics"""
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage("/")
            process = psutil.Process()

            return {
                "cpu": {
                    "percent": psutil.cpu_percent(interval=None),
                    "count": psutil.cpu_count(),
                },
                "memory": {
                    "total_bytes": memory.total,
                    "available_bytes": memory.available,
                    "percent": memory.percent,
                },
                "disk": {
                    "total_bytes": disk.total,
                    "free_bytes": disk.free,
                    "percent": (disk.used / disk.total) * 100,
                },
                "process": {
                    "rss_bytes": process.memory_info().rss,
                    "threads": process.num_threads(),
                },
            }
        except (psutil.Error, OSError) as e:
            logger.error(f"Error getting system stats: {e}")
            return {}

    async def _collect_system_metrics(self, interval: float):
        while True:
            stats = self.get_system_stats()
            if "cpu" in stats:
                self.set_gauge("system_cpu_percent", stats["cpu"]["percent"])
            if "memory" in stats:
                self.set_gauge("system_memory_percent", stats["memory"]["percent"])
            if "process" in stats:
                self.set_gauge("process_rss_bytes", stats["process"]["rss_bytes"])
            await asyncio.sleep(interval)

    def start_system_metrics(self, interval: float = 30.0):
        """Start background system metrics collection on the running loop"""
        if self._system_metrics_task is None or self._system_metrics_task.done():
            self._system_metrics_task = asyncio.get_running_loop().create_task(
                self._collect_system_metrics(interval)
            )

    def cleanup(self):
        """Cleanup resources"""
        if self._system_metrics_task:
            self._system_metrics_task.cancel()
            self._system_metrics_task = None


class PerformanceTimer:
    """Context manager for timing operations"""

    def __init__(
        self,
        name: str,
        collector: MetricsCollector,
        tags: Optional[Dict[str, str]] = None,
    ):
        self.name = name
        self.collector = collector
        self.tags = tags or {}
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.perf_counter()
        tags = self.tags.copy()
        if exc_type:
            tags["error"] = exc_type.__name__
        self.collector.record_metric(self.name, self.duration_ms, tags)

    @property
    def duration_ms(self) -> Optional[float]:
        """Get duration in milliseconds"""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time) * 1000
        return None


@asynccontextmanager
async def async_timer(
    name: str, collector: MetricsCollector, tags: Optional[Dict[str, str]] = None
):
    """Async context manager for timing operations"""
    start_time = time.perf_counter()
    tags = dict(tags or {})

    try:
        yield
    except Exception as e:
        tags["error"] = type(e).__name__
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        collector.record_metric(name, duration_ms, tags)


# Global metrics collector
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
        logger.info("Metrics collector initialized")
    return _metrics_collector


def init_metrics_collector(max_metrics: int = 10000) -> MetricsCollector:
    """Initialize metrics collector with custom settings"""
    global _metrics_collector
    if _metrics_collector:
        _metrics_collector.cleanup()

    _metrics_collector = MetricsCollector(max_metrics=max_metrics)
    logger.info(f"Metrics collector initialized with max_metrics={max_metrics}")
    return _metrics_collector


def timed(name: Optional[str] = None, tags: Optional[Dict[str, str]] = None):
    """Decorator to time function execution"""

    def decorator(func):
        metric_name = name or f"{func.__module__}.{func.__name__}"

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                async with async_timer(metric_name, get_metrics_collector(), tags):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with PerformanceTimer(metric_name, get_metrics_collector(), tags):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator
