"""
Profile Store

Owns hunter profile state. Every mutation follows the same shape:
load the profile, compute the complete next state, then write the changed
fields in one version-checked save. A concurrent writer therefore causes a
ConcurrencyConflictError, never an interleaved partial update.

One-off grants (mission rewards, raid rewards, the daily bonus, missed
mission penalties) carry a reward key. The key is recorded in the same
write as the XP, and a key that is already in the ledger is never applied
again, so re-driving a grant after any failure is safe.
"""

import logging
from datetime import date
from typing import Optional, Union

from hunter_engine.db.protocols import ProgressionStore
from hunter_engine.exceptions import InvalidInputError
from hunter_engine.gamification.xp_system import apply_xp
from hunter_engine.models.profile import HunterProfile, StatHistoryEntry, StatKey
from hunter_engine.models.results import XPAward
from hunter_engine.monitoring import record_level_ups, record_xp_awarded
from hunter_engine.validators import parse_reward_stats, parse_stat_key

logger = logging.getLogger(__name__)


def daily_bonus_key(on_date: date) -> str:
    return f"daily_bonus:{on_date.isoformat()}"


class ProfileStore:
    """Read and apply-delta operations over HunterProfile"""

    def __init__(self, store: ProgressionStore):
        self.store = store

    async def get_profile(self, user_id: str) -> HunterProfile:
        return await self.store.load_profile(user_id)

    async def create_profile(self, user_id: str, username: str = "hunter") -> HunterProfile:
        """Create the signup profile (level 1, all stats 1); idempotent"""
        return await self.store.create_profile(HunterProfile(id=user_id, username=username))

    async def apply_xp(
        self,
        user_id: str,
        delta: int,
        reason: str = "activity",
        missions_completed: int = 0,
        reward_key: Optional[str] = None
    ) -> XPAward:
        """
        Apply an XP delta and persist the resulting level-ups

        Args:
            user_id: Hunter's user ID
            delta: XP to add (negative for penalties)
            reason: Source tag for logs and metrics
            missions_completed: Added to total_missions_completed in the same write
            reward_key: Ledger key for a one-off grant; when it is already
                recorded nothing is written and already_granted is set

        Returns:
            XPAward with the saved profile and level change
        """
        profile = await self.store.load_profile(user_id)
        if await self._in_ledger(profile, reward_key):
            return self._already_granted(profile)

        fields = {}
        if missions_completed:
            fields["total_missions_completed"] = profile.total_missions_completed + missions_completed
        return await self._save_with_xp(profile, delta, reason, fields, reward_key=reward_key)

    async def record_workout(self, user_id: str, xp: int) -> tuple[XPAward, int, int]:
        """
        Count a workout and grant its XP in one write

        Returns:
            (XPAward, old total_workouts, new total_workouts)
        """
        profile = await self.store.load_profile(user_id)
        old_count = profile.total_workouts
        award = await self._save_with_xp(
            profile, xp, "workout", {"total_workouts": old_count + 1}
        )
        return award, old_count, award.profile.total_workouts

    async def allocate_stat_point(self, user_id: str, stat: Union[str, StatKey]) -> HunterProfile:
        """
        Spend one available point on a stat

        Raises:
            InvalidInputError: unknown stat or no points available
        """
        stat_key = parse_stat_key(stat, user_id=user_id)
        profile = await self.store.load_profile(user_id)

        if profile.available_points <= 0:
            raise InvalidInputError(
                "No stat points available",
                field="available_points",
                value=profile.available_points,
                user_id=user_id,
                operation="allocate_stat_point"
            )

        old_value = profile.get_stat(stat_key)
        saved = await self.store.save_profile(
            user_id,
            {stat_key.value: old_value + 1, "available_points": profile.available_points - 1},
            expected_version=profile.version,
            history=[StatHistoryEntry(
                user_id=user_id,
                stat_key=stat_key,
                old_value=old_value,
                new_value=old_value + 1,
                reason="stat_allocation",
            )]
        )

        logger.info(f"User {user_id} allocated a point to {stat_key.value.upper()} ({old_value} -> {old_value + 1})")
        return saved

    async def apply_raid_reward(
        self,
        user_id: str,
        reward_stats: dict,
        reward_xp: int,
        reason: str,
        reward_key: Optional[str] = None
    ) -> tuple[XPAward, list[StatHistoryEntry]]:
        """
        Add raid stat bonuses, XP and their stat history in one write

        Returns:
            (XPAward, stat history entries written); no entries when the
            reward key was already granted
        """
        bonuses = parse_reward_stats(reward_stats, user_id=user_id)
        profile = await self.store.load_profile(user_id)
        if await self._in_ledger(profile, reward_key):
            return self._already_granted(profile), []

        changes = [
            StatHistoryEntry(
                user_id=user_id,
                stat_key=stat,
                old_value=profile.get_stat(stat),
                new_value=profile.get_stat(stat) + bonus,
                reason=reason,
            )
            for stat, bonus in bonuses.items()
        ]
        fields = {entry.stat_key.value: entry.new_value for entry in changes}

        award = await self._save_with_xp(
            profile, reward_xp, "boss_raid", fields, reward_key=reward_key, history=changes
        )
        return award, changes

    async def complete_day(self, user_id: str, on_date: date, bonus_xp: int) -> XPAward:
        """
        Grant the daily bonus and extend the streak for on_date, once

        Both land in the same write as the day's ledger key; later calls for
        the same date return an already_granted award.
        """
        reward_key = daily_bonus_key(on_date)
        profile = await self.store.load_profile(user_id)
        if await self._in_ledger(profile, reward_key):
            return self._already_granted(profile)

        new_streak = profile.current_streak + 1
        award = await self._save_with_xp(
            profile,
            bonus_xp,
            "daily_bonus",
            {"current_streak": new_streak, "max_streak": max(profile.max_streak, new_streak)},
            reward_key=reward_key
        )
        logger.info(f"User {user_id} completed {on_date}: streak {new_streak} (best {award.profile.max_streak})")
        return award

    async def update_streak(self, user_id: str, increment: bool = True) -> HunterProfile:
        """Extend the daily streak by one, or reset it to zero"""
        profile = await self.store.load_profile(user_id)
        new_streak = profile.current_streak + 1 if increment else 0
        new_max = max(profile.max_streak, new_streak)

        if new_streak == profile.current_streak and new_max == profile.max_streak:
            return profile

        saved = await self.store.save_profile(
            user_id,
            {"current_streak": new_streak, "max_streak": new_max},
            expected_version=profile.version
        )
        logger.info(f"User {user_id} streak {'extended' if increment else 'reset'}: {new_streak} (best {new_max})")
        return saved

    async def _in_ledger(self, profile: HunterProfile, reward_key: Optional[str]) -> bool:
        # Checked after the profile read: a grant landing in between bumps
        # the version, so the later save conflicts instead of paying twice
        if reward_key is None:
            return False
        if await self.store.is_reward_granted(profile.id, reward_key):
            logger.debug(f"Reward {reward_key} already granted to user {profile.id}")
            return True
        return False

    @staticmethod
    def _already_granted(profile: HunterProfile) -> XPAward:
        return XPAward(
            profile=profile,
            xp_awarded=0,
            old_level=profile.level,
            new_level=profile.level,
            already_granted=True,
        )

    async def _save_with_xp(
        self,
        profile: HunterProfile,
        delta: int,
        reason: str,
        extra_fields: Optional[dict] = None,
        reward_key: Optional[str] = None,
        history: Optional[list[StatHistoryEntry]] = None
    ) -> XPAward:
        result = apply_xp(profile, delta)
        fields = dict(extra_fields or {})
        if result.applied_delta != 0 or result.levels_gained:
            fields.update(result.state.model_dump())

        saved = profile
        if fields or reward_key is not None or history:
            saved = await self.store.save_profile(
                profile.id,
                fields,
                expected_version=profile.version,
                reward_key=reward_key,
                history=history
            )

        record_xp_awarded(result.applied_delta, reason)
        record_level_ups(result.levels_gained)

        if result.applied_delta:
            logger.info(
                f"Applied {result.applied_delta} XP to user {profile.id} for {reason}. "
                f"Total: {saved.total_xp} XP, Level: {saved.level}"
            )
        if result.levels_gained:
            logger.info(f"User {profile.id} leveled up from {profile.level} to {saved.level}!")

        return XPAward(
            profile=saved,
            xp_awarded=result.applied_delta,
            old_level=profile.level,
            new_level=saved.level,
            levels_gained=result.levels_gained,
        )
