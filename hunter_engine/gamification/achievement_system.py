"""
Achievement System

Grants achievements when a hunter crosses a milestone:
- Level milestones (5, 10, 25, 50)
- Workout count milestones (1, 10, 25, 50, 100)
- Boss raid completions (one per raid)

Granting is an explicit idempotent operation: the unlocker checks whether
(user, key) already exists before inserting, so re-evaluating a milestone
is a visible, logged no-op rather than a suppressed storage conflict.
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone
import logging

from hunter_engine.db.protocols import AchievementRepository
from hunter_engine.models.achievement import Achievement, AchievementDefinition, Rarity
from hunter_engine.models.raid import BossRaid, RaidDifficulty
from hunter_engine.monitoring import record_achievement_unlocked

logger = logging.getLogger(__name__)


LEVEL_MILESTONES: List[AchievementDefinition] = [
    AchievementDefinition(
        key="level_5",
        title="🌟 Emerging Hunter",
        description="Reached level 5",
        icon="🌟",
        rarity=Rarity.RARE,
        threshold=5,
    ),
    AchievementDefinition(
        key="level_10",
        title="⚡ Seasoned Hunter",
        description="Reached level 10",
        icon="⚡",
        rarity=Rarity.EPIC,
        threshold=10,
    ),
    AchievementDefinition(
        key="level_25",
        title="👑 Elite Hunter",
        description="Reached level 25",
        icon="👑",
        rarity=Rarity.LEGENDARY,
        threshold=25,
    ),
    AchievementDefinition(
        key="level_50",
        title="🔥 Legendary Hunter",
        description="Reached level 50",
        icon="🔥",
        rarity=Rarity.MYTHIC,
        threshold=50,
    ),
]

WORKOUT_MILESTONES: List[AchievementDefinition] = [
    AchievementDefinition(
        key="first_workout",
        title="🏃 First Step",
        description="Completed your first workout",
        icon="🏃",
        rarity=Rarity.COMMON,
        threshold=1,
    ),
    AchievementDefinition(
        key="workout_10",
        title="💪 Dedication",
        description="Completed 10 workouts",
        icon="💪",
        rarity=Rarity.COMMON,
        threshold=10,
    ),
    AchievementDefinition(
        key="workout_25",
        title="🔥 Consistency",
        description="Completed 25 workouts",
        icon="🔥",
        rarity=Rarity.RARE,
        threshold=25,
    ),
    AchievementDefinition(
        key="workout_50",
        title="⚡ Warrior",
        description="Completed 50 workouts",
        icon="⚡",
        rarity=Rarity.EPIC,
        threshold=50,
    ),
    AchievementDefinition(
        key="workout_100",
        title="👑 Fitness Master",
        description="Completed 100 workouts",
        icon="👑",
        rarity=Rarity.LEGENDARY,
        threshold=100,
    ),
]


def crossed_milestones(
    milestones: List[AchievementDefinition],
    old_value: int,
    new_value: int
) -> List[AchievementDefinition]:
    """Every milestone in (old_value, new_value], lowest first"""
    return [m for m in milestones if old_value < m.threshold <= new_value]


def rarity_for_difficulty(difficulty: RaidDifficulty) -> Rarity:
    """
    Raid achievement rarity

    SSS (legacy 'legendary') -> legendary, SS (legacy 'extreme') -> epic,
    everything else -> rare.
    """
    if difficulty == RaidDifficulty.SSS:
        return Rarity.LEGENDARY
    if difficulty == RaidDifficulty.SS:
        return Rarity.EPIC
    return Rarity.RARE


def raid_achievement_key(raid_id: str) -> str:
    return f"boss_{raid_id}"


class AchievementUnlocker:
    """Decides which achievements to grant and grants each at most once"""

    def __init__(self, store: AchievementRepository):
        self.store = store

    async def unlock(self, user_id: str, key: str, payload: Dict) -> Optional[Achievement]:
        """
        Insert-if-absent by (user_id, key)

        Args:
            user_id: Hunter's user ID
            key: Unique achievement key
            payload: title, description, icon, rarity

        Returns:
            The new Achievement, or None if it was already unlocked
        """
        existing = await self.store.get_achievement(user_id, key)
        if existing is not None:
            logger.debug(f"Achievement {key} already unlocked for user {user_id}, skipping")
            return None

        record = Achievement(
            user_id=user_id,
            achievement_key=key,
            title=payload["title"],
            description=payload.get("description", ""),
            icon=payload.get("icon", "🏆"),
            rarity=payload.get("rarity", Rarity.COMMON),
            unlocked_at=datetime.now(timezone.utc),
        )

        created = await self.store.insert_achievement_if_absent(user_id, key, record)
        if not created:
            # Another writer got there between the check and the insert
            logger.debug(f"Achievement {key} was unlocked concurrently for user {user_id}")
            return None

        record_achievement_unlocked(record.rarity.value)
        logger.info(f"User {user_id} unlocked achievement: {key} ({record.title}) [{record.rarity.value}]")
        return record

    async def check_level_milestones(self, user_id: str, old_level: int, new_level: int) -> List[Achievement]:
        """Unlock every level milestone crossed by a level change"""
        return await self._unlock_definitions(
            user_id, crossed_milestones(LEVEL_MILESTONES, old_level, new_level)
        )

    async def check_workout_milestones(self, user_id: str, old_count: int, new_count: int) -> List[Achievement]:
        """Unlock every workout-count milestone crossed by a count change"""
        return await self._unlock_definitions(
            user_id, crossed_milestones(WORKOUT_MILESTONES, old_count, new_count)
        )

    async def unlock_raid_completion(self, raid: BossRaid) -> Optional[Achievement]:
        """Grant the per-raid achievement keyed by the raid id"""
        return await self.unlock(
            raid.user_id,
            raid_achievement_key(raid.id),
            {
                "title": f"🏆 {raid.title}",
                "description": f"Defeated: {raid.description or raid.title}",
                "icon": "🏆",
                "rarity": rarity_for_difficulty(raid.difficulty),
            },
        )

    async def list_achievements(self, user_id: str) -> List[Achievement]:
        """User's achievements, most recent first"""
        return await self.store.list_achievements(user_id)

    async def _unlock_definitions(
        self,
        user_id: str,
        definitions: List[AchievementDefinition]
    ) -> List[Achievement]:
        newly_unlocked = []
        for definition in definitions:
            achievement = await self.unlock(
                user_id,
                definition.key,
                {
                    "title": definition.title,
                    "description": definition.description,
                    "icon": definition.icon,
                    "rarity": definition.rarity,
                },
            )
            if achievement:
                newly_unlocked.append(achievement)
        return newly_unlocked
