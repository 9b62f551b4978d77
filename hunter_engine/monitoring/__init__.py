"""Monitoring infrastructure for the progression engine"""
from hunter_engine.monitoring.prometheus_metrics import (
    metrics,
    track_operation,
    record_xp_awarded,
    record_level_ups,
    record_mission_completed,
    record_raid_completed,
    record_achievement_unlocked,
    record_retry,
)

__all__ = [
    "metrics",
    "track_operation",
    "record_xp_awarded",
    "record_level_ups",
    "record_mission_completed",
    "record_raid_completed",
    "record_achievement_unlocked",
    "record_retry",
]
