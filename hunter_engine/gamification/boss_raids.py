"""
Boss Raids

Long-running challenges that are not bound to a date. How a raid moves
forward depends on its boss_type:

- workout_count: +1 per logged workout
- level_target: progress is replaced by the hunter's current level
- daily_streak: +1 each time all required missions of a day are completed

Raids with an unrecognised boss_type stay inert. On first reaching the
target a raid is completed, its stat bonuses and XP are applied once, and
the per-raid achievement is unlocked. A raid stays open until its reward is
flagged as granted, so any later trigger finishes an interrupted payout.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from hunter_engine.db.protocols import RaidRepository
from hunter_engine.exceptions import HunterEngineError, RewardPendingError
from hunter_engine.gamification.achievement_system import AchievementUnlocker
from hunter_engine.gamification.profile_store import ProfileStore
from hunter_engine.models.raid import BossRaid, BossType, RaidDifficulty, RaidTrigger
from hunter_engine.models.results import RaidProgress
from hunter_engine.monitoring import record_raid_completed
from hunter_engine.validators import parse_reward_stats

logger = logging.getLogger(__name__)


# Starter raids seeded for every new hunter
STARTER_RAIDS: List[Dict] = [
    {
        "title": "Fire Streak",
        "description": "Complete every required mission 7 days in a row",
        "boss_type": BossType.DAILY_STREAK.value,
        "difficulty": RaidDifficulty.D,
        "target_value": 7,
        "reward_description": "+2 STR, +1 VIT, 100 XP",
        "reward_stats": {"str": 2, "vit": 1},
        "reward_xp": 100,
    },
    {
        "title": "Iron Initiate",
        "description": "Log 10 workouts",
        "boss_type": BossType.WORKOUT_COUNT.value,
        "difficulty": RaidDifficulty.C,
        "target_value": 10,
        "reward_description": "+1 AGI, 150 XP",
        "reward_stats": {"agi": 1},
        "reward_xp": 150,
    },
    {
        "title": "Absolute Strength",
        "description": "Log 50 workouts",
        "boss_type": BossType.WORKOUT_COUNT.value,
        "difficulty": RaidDifficulty.A,
        "target_value": 50,
        "reward_description": "+3 STR, +2 VIT, 500 XP",
        "reward_stats": {"str": 3, "vit": 2},
        "reward_xp": 500,
    },
    {
        "title": "Awakened Hunter",
        "description": "Reach level 10",
        "boss_type": BossType.LEVEL_TARGET.value,
        "difficulty": RaidDifficulty.B,
        "target_value": 10,
        "reward_description": "+1 INT, +1 CHA, 250 XP",
        "reward_stats": {"int": 1, "cha": 1},
        "reward_xp": 250,
    },
]


# ============================================
# Progress handlers, one per BossType
# ============================================
# A handler returns the new progress value, or None when the trigger does
# not apply to that raid.

RaidHandler = Callable[[BossRaid, RaidTrigger, Optional[int]], Optional[int]]


def _workout_count_progress(raid: BossRaid, trigger: RaidTrigger, level: Optional[int]) -> Optional[int]:
    if trigger != RaidTrigger.WORKOUT:
        return None
    return raid.current_progress + 1


def _level_target_progress(raid: BossRaid, trigger: RaidTrigger, level: Optional[int]) -> Optional[int]:
    if level is None:
        return None
    # Levels never drop, but a stale level must not move progress backwards
    return max(raid.current_progress, level)


def _daily_streak_progress(raid: BossRaid, trigger: RaidTrigger, level: Optional[int]) -> Optional[int]:
    if trigger != RaidTrigger.ALL_REQUIRED_COMPLETED:
        return None
    return raid.current_progress + 1


RAID_HANDLERS: Dict[BossType, RaidHandler] = {
    BossType.WORKOUT_COUNT: _workout_count_progress,
    BossType.LEVEL_TARGET: _level_target_progress,
    BossType.DAILY_STREAK: _daily_streak_progress,
}

_unhandled = set(BossType) - set(RAID_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No raid progress handler for: {sorted(t.value for t in _unhandled)}")


def build_raid(user_id: str, template: Dict) -> BossRaid:
    """Instantiate a raid from a template, rejecting unknown reward stats"""
    data = dict(template)
    data["reward_stats"] = parse_reward_stats(data.get("reward_stats"), user_id=user_id)
    return BossRaid(user_id=user_id, **data)


class BossRaidTracker:
    """Advances a hunter's open raids and pays out completions"""

    def __init__(self, store: RaidRepository, profile_store: ProfileStore, unlocker: AchievementUnlocker):
        self.store = store
        self.profile_store = profile_store
        self.unlocker = unlocker

    async def seed_initial(self, user_id: str) -> List[BossRaid]:
        """Create the starter raids only if the user has no uncompleted raid"""
        raids = [build_raid(user_id, template) for template in STARTER_RAIDS]
        created = await self.store.seed_raids_if_absent(user_id, raids)
        if created:
            logger.info(f"Seeded {len(raids)} starter raids for user {user_id}")
        else:
            logger.debug(f"User {user_id} already has open raids, skipping seed")
        return await self.store.list_open_raids(user_id)

    async def list_open(self, user_id: str) -> List[BossRaid]:
        return await self.store.list_open_raids(user_id)

    async def evaluate(
        self,
        user_id: str,
        trigger: RaidTrigger,
        level: Optional[int] = None,
        marker: Optional[str] = None
    ) -> List[RaidProgress]:
        """
        Run a trigger against every open raid of the user

        Args:
            user_id: Hunter's user ID
            trigger: Event that occurred
            level: Current level for level_target raids; loaded from the
                profile when omitted and such a raid is open
            marker: Identifies this occurrence of the trigger (the day for
                all_required_completed); a raid counts each marker once

        Returns:
            RaidProgress for every raid whose progress changed or whose
            pending reward was paid
        """
        raids = await self.store.list_open_raids(user_id)

        if level is None and any(r.kind == BossType.LEVEL_TARGET for r in raids):
            level = (await self.profile_store.get_profile(user_id)).level

        results = []
        for raid in raids:
            progress = await self.advance_raid(raid, trigger, level, marker)
            if progress is not None:
                results.append(progress)
        return results

    async def advance_raid(
        self,
        raid: BossRaid,
        trigger: RaidTrigger,
        level: Optional[int] = None,
        marker: Optional[str] = None
    ) -> Optional[RaidProgress]:
        """
        Apply one trigger to one raid

        A completed raid whose reward never landed is paid instead.

        Returns:
            RaidProgress when the raid changed, None otherwise
        """
        if raid.completed:
            if not raid.reward_granted:
                return await self._grant_reward(raid)
            logger.debug(f"Raid {raid.id} already completed, ignoring {trigger.value}")
            return None

        kind = raid.kind
        if kind is None:
            logger.debug(f"Raid {raid.id} has unrecognised boss_type '{raid.boss_type}', inert")
            return None

        if marker is not None and raid.progress_marker == marker:
            logger.debug(f"Raid {raid.id} already counted {trigger.value} for {marker}")
            return None

        new_progress = RAID_HANDLERS[kind](raid, trigger, level)
        if new_progress is None or new_progress == raid.current_progress:
            return None

        new_progress = min(new_progress, raid.target_value)
        completed = new_progress >= raid.target_value

        saved = await self.store.save_raid(raid.model_copy(update={
            "current_progress": new_progress,
            "completed": completed,
            "completed_at": datetime.now(timezone.utc) if completed else None,
            "progress_marker": marker if marker is not None else raid.progress_marker,
        }))

        if not completed:
            logger.debug(f"Raid {saved.id} progress: {saved.current_progress}/{saved.target_value}")
            return RaidProgress(raid=saved, transitioned=False)

        record_raid_completed(kind.value)
        logger.info(f"User {saved.user_id} defeated boss raid '{saved.title}' ({saved.id})")
        return await self._grant_reward(saved)

    async def grant_pending_reward(self, raid_id: str) -> RaidProgress:
        """Retry the payout of a completed raid whose reward never landed"""
        raid = await self.store.get_raid(raid_id)
        if not raid.completed:
            return RaidProgress(raid=raid, transitioned=False)

        if raid.reward_granted:
            achievement = await self.unlocker.unlock_raid_completion(raid)
            return RaidProgress(raid=raid, transitioned=False, achievement=achievement)

        return await self._grant_reward(raid)

    async def _grant_reward(self, raid: BossRaid) -> RaidProgress:
        # Stats, XP, stat history and the ledger key land in one profile write;
        # the achievement and the reward_granted flag follow and are re-run
        # until the flag is saved
        try:
            award, changes = await self.profile_store.apply_raid_reward(
                raid.user_id,
                raid.reward_stats,
                raid.reward_xp,
                reason=f"boss_reward_{raid.id}",
                reward_key=f"raid:{raid.id}"
            )
        except HunterEngineError as e:
            if not e.retryable:
                raise
            raise RewardPendingError(
                f"Boss raid {raid.id} completed but its reward failed",
                record_type="BossRaid",
                record_id=raid.id,
                user_id=raid.user_id,
                operation="grant_raid_reward",
                cause=e
            ) from e

        achievement = await self.unlocker.unlock_raid_completion(raid)
        saved = await self.store.save_raid(raid.model_copy(update={"reward_granted": True}))

        return RaidProgress(
            raid=saved,
            transitioned=not award.already_granted,
            xp_award=award,
            stat_changes=changes,
            achievement=achievement,
        )
