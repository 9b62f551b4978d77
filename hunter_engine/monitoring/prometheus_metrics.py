"""Prometheus metrics definitions and helpers"""
import logging
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

from hunter_engine.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Container for all Prometheus metrics"""

    def __init__(self, enabled: bool = ENABLE_PROMETHEUS):
        self._enabled = enabled
        if not enabled:
            logger.info("Prometheus metrics disabled")
            return

        # Progression Metrics
        self.xp_awarded_total = Counter(
            'hunter_xp_awarded_total',
            'Total XP applied to hunter profiles (clamp-adjusted)',
            ['source']
        )

        self.level_ups_total = Counter(
            'hunter_level_ups_total',
            'Total levels gained'
        )

        self.missions_completed_total = Counter(
            'hunter_missions_completed_total',
            'Total mission completions',
            ['mission_type']
        )

        self.raids_completed_total = Counter(
            'hunter_raids_completed_total',
            'Total boss raid completions',
            ['boss_type']
        )

        self.achievements_unlocked_total = Counter(
            'hunter_achievements_unlocked_total',
            'Total achievements unlocked',
            ['rarity']
        )

        # Error Metrics
        self.engine_errors_total = Counter(
            'hunter_engine_errors_total',
            'Engine errors by type',
            ['operation', 'error_type']
        )

        self.retries_total = Counter(
            'hunter_retries_total',
            'Caller-side retries of retryable engine errors',
            ['operation']
        )

        self.operation_duration_seconds = Histogram(
            'hunter_operation_duration_seconds',
            'Engine operation latency',
            ['operation'],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
        )

        logger.info("Prometheus metrics initialized")

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled"""
        return self._enabled


# Global metrics instance
metrics = PrometheusMetrics()


@contextmanager
def track_operation(operation: str):
    """Track engine operation latency and failures"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()
    try:
        yield
    except Exception as e:
        metrics.engine_errors_total.labels(
            operation=operation,
            error_type=type(e).__name__
        ).inc()
        raise
    finally:
        metrics.operation_duration_seconds.labels(operation=operation).observe(time.time() - start_time)


def record_xp_awarded(amount: int, source: str) -> None:
    if not metrics.enabled or amount <= 0:
        return
    metrics.xp_awarded_total.labels(source=source).inc(amount)


def record_level_ups(levels: int) -> None:
    if not metrics.enabled or levels <= 0:
        return
    metrics.level_ups_total.inc(levels)


def record_mission_completed(mission_type: str) -> None:
    if not metrics.enabled:
        return
    metrics.missions_completed_total.labels(mission_type=mission_type).inc()


def record_raid_completed(boss_type: str) -> None:
    if not metrics.enabled:
        return
    metrics.raids_completed_total.labels(boss_type=boss_type).inc()


def record_achievement_unlocked(rarity: str) -> None:
    if not metrics.enabled:
        return
    metrics.achievements_unlocked_total.labels(rarity=rarity).inc()


def record_retry(operation: str) -> None:
    if not metrics.enabled:
        return
    metrics.retries_total.labels(operation=operation).inc()
