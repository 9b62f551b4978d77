"""
In-memory progression store

Implements every repository protocol with the same version-check semantics
as the Postgres store. Nothing is persisted across processes; used by the
'memory' backend and throughout the test suite.

Every call yields to the event loop once, so logically concurrent callers
interleave the way they would against a real database.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from hunter_engine.exceptions import ConcurrencyConflictError, NotFoundError
from hunter_engine.models.profile import HunterProfile, StatHistoryEntry
from hunter_engine.models.mission import Mission
from hunter_engine.models.raid import BossRaid
from hunter_engine.models.achievement import Achievement

logger = logging.getLogger(__name__)


class InMemoryStore:
    """In-process store for profiles, missions, raids, achievements, stat history and the reward ledger"""

    def __init__(self):
        self._profiles: dict[str, HunterProfile] = {}
        self._missions: dict[str, Mission] = {}
        self._raids: dict[str, BossRaid] = {}
        self._achievements: dict[tuple[str, str], Achievement] = {}
        self._stat_history: list[StatHistoryEntry] = []
        self._granted_rewards: set[tuple[str, str]] = set()
        logger.debug("InMemoryStore initialized")

    # ==========================================
    # Profiles
    # ==========================================

    async def load_profile(self, user_id: str) -> HunterProfile:
        await asyncio.sleep(0)
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(
                f"No hunter profile for user {user_id}",
                record_type="HunterProfile",
                record_id=user_id,
                user_id=user_id,
                operation="load_profile"
            )
        return profile.model_copy(deep=True)

    async def create_profile(self, profile: HunterProfile) -> HunterProfile:
        await asyncio.sleep(0)
        if profile.id not in self._profiles:
            self._profiles[profile.id] = profile.model_copy(deep=True)
            logger.info(f"Created hunter profile for user {profile.id}")
        return self._profiles[profile.id].model_copy(deep=True)

    async def save_profile(
        self,
        user_id: str,
        fields: dict[str, Any],
        expected_version: int,
        reward_key: Optional[str] = None,
        history: Optional[list[StatHistoryEntry]] = None
    ) -> HunterProfile:
        await asyncio.sleep(0)
        stored = self._profiles.get(user_id)
        if stored is None:
            raise NotFoundError(
                f"No hunter profile for user {user_id}",
                record_type="HunterProfile",
                record_id=user_id,
                user_id=user_id,
                operation="save_profile"
            )
        if stored.version != expected_version:
            raise ConcurrencyConflictError(
                f"Profile {user_id} is at version {stored.version}, expected {expected_version}",
                record_type="HunterProfile",
                record_id=user_id,
                expected_version=expected_version,
                user_id=user_id,
                operation="save_profile"
            )
        if reward_key is not None and (user_id, reward_key) in self._granted_rewards:
            raise ConcurrencyConflictError(
                f"Reward {reward_key} already granted to user {user_id}",
                record_type="HunterProfile",
                record_id=user_id,
                expected_version=expected_version,
                user_id=user_id,
                operation="save_profile"
            )

        record = stored.to_record()
        record.update(fields)
        record["version"] = stored.version + 1
        record["updated_at"] = datetime.now(timezone.utc)
        updated = HunterProfile.model_validate(record)
        self._profiles[user_id] = updated
        if reward_key is not None:
            self._granted_rewards.add((user_id, reward_key))
        for entry in history or []:
            self._stat_history.append(
                entry.model_copy(update={"id": len(self._stat_history) + 1}, deep=True)
            )
        return updated.model_copy(deep=True)

    async def is_reward_granted(self, user_id: str, reward_key: str) -> bool:
        await asyncio.sleep(0)
        return (user_id, reward_key) in self._granted_rewards

    # ==========================================
    # Missions
    # ==========================================

    async def list_missions_for_date(self, user_id: str, on_date: date) -> list[Mission]:
        await asyncio.sleep(0)
        missions = [
            m for m in self._missions.values()
            if m.user_id == user_id and m.date == on_date
        ]
        missions.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in missions]

    async def get_mission(self, mission_id: str) -> Mission:
        await asyncio.sleep(0)
        mission = self._missions.get(mission_id)
        if mission is None:
            raise NotFoundError(
                f"Mission {mission_id} does not exist",
                record_type="Mission",
                record_id=mission_id,
                operation="get_mission"
            )
        return mission.model_copy(deep=True)

    async def generate_missions_if_absent(self, user_id: str, on_date: date, missions: list[Mission]) -> bool:
        await asyncio.sleep(0)
        if any(m.user_id == user_id and m.date == on_date for m in self._missions.values()):
            return False
        for mission in missions:
            self._missions[mission.id] = mission.model_copy(deep=True)
        return True

    async def save_mission(self, mission: Mission) -> Mission:
        await asyncio.sleep(0)
        stored = self._missions.get(mission.id)
        if stored is None:
            raise NotFoundError(
                f"Mission {mission.id} does not exist",
                record_type="Mission",
                record_id=mission.id,
                operation="save_mission"
            )
        if stored.version != mission.version:
            raise ConcurrencyConflictError(
                f"Mission {mission.id} is at version {stored.version}, expected {mission.version}",
                record_type="Mission",
                record_id=mission.id,
                expected_version=mission.version,
                user_id=mission.user_id,
                operation="save_mission"
            )
        updated = mission.model_copy(update={"version": stored.version + 1}, deep=True)
        self._missions[mission.id] = updated
        return updated.model_copy(deep=True)

    # ==========================================
    # Boss Raids
    # ==========================================

    async def list_open_raids(self, user_id: str) -> list[BossRaid]:
        await asyncio.sleep(0)
        raids = [r for r in self._raids.values() if r.user_id == user_id and not r.reward_granted]
        raids.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in raids]

    async def get_raid(self, raid_id: str) -> BossRaid:
        await asyncio.sleep(0)
        raid = self._raids.get(raid_id)
        if raid is None:
            raise NotFoundError(
                f"Boss raid {raid_id} does not exist",
                record_type="BossRaid",
                record_id=raid_id,
                operation="get_raid"
            )
        return raid.model_copy(deep=True)

    async def seed_raids_if_absent(self, user_id: str, raids: list[BossRaid]) -> bool:
        await asyncio.sleep(0)
        if any(r.user_id == user_id and not r.completed for r in self._raids.values()):
            return False
        for raid in raids:
            self._raids[raid.id] = raid.model_copy(deep=True)
        return True

    async def save_raid(self, raid: BossRaid) -> BossRaid:
        await asyncio.sleep(0)
        stored = self._raids.get(raid.id)
        if stored is None:
            raise NotFoundError(
                f"Boss raid {raid.id} does not exist",
                record_type="BossRaid",
                record_id=raid.id,
                operation="save_raid"
            )
        if stored.version != raid.version:
            raise ConcurrencyConflictError(
                f"Boss raid {raid.id} is at version {stored.version}, expected {raid.version}",
                record_type="BossRaid",
                record_id=raid.id,
                expected_version=raid.version,
                user_id=raid.user_id,
                operation="save_raid"
            )
        updated = raid.model_copy(update={"version": stored.version + 1}, deep=True)
        self._raids[raid.id] = updated
        return updated.model_copy(deep=True)

    # ==========================================
    # Achievements
    # ==========================================

    async def get_achievement(self, user_id: str, key: str) -> Optional[Achievement]:
        await asyncio.sleep(0)
        achievement = self._achievements.get((user_id, key))
        return achievement.model_copy(deep=True) if achievement else None

    async def insert_achievement_if_absent(self, user_id: str, key: str, record: Achievement) -> bool:
        await asyncio.sleep(0)
        if (user_id, key) in self._achievements:
            return False
        self._achievements[(user_id, key)] = record.model_copy(deep=True)
        return True

    async def list_achievements(self, user_id: str) -> list[Achievement]:
        await asyncio.sleep(0)
        achievements = [a for (uid, _), a in self._achievements.items() if uid == user_id]
        achievements.sort(key=lambda a: a.unlocked_at, reverse=True)
        return [a.model_copy(deep=True) for a in achievements]

    # ==========================================
    # Stat History
    # ==========================================

    async def list_stat_history(self, user_id: str) -> list[StatHistoryEntry]:
        await asyncio.sleep(0)
        return [e.model_copy(deep=True) for e in self._stat_history if e.user_id == user_id]
