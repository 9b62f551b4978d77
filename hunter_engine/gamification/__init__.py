"""
Progression engine for the hunter fitness tracker

- XP and leveling math
- Hunter profile state
- Daily missions
- Boss raids
- Achievements
"""

from hunter_engine.gamification.xp_system import apply_xp, xp_for_workout, xp_for_meal
from hunter_engine.gamification.profile_store import ProfileStore
from hunter_engine.gamification.achievement_system import AchievementUnlocker
from hunter_engine.gamification.missions import MissionTracker
from hunter_engine.gamification.boss_raids import BossRaidTracker

__all__ = [
    "apply_xp",
    "xp_for_workout",
    "xp_for_meal",
    "ProfileStore",
    "AchievementUnlocker",
    "MissionTracker",
    "BossRaidTracker",
]
