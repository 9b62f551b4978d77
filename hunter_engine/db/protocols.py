"""
Persistence contracts the engine calls into

All methods are async and may raise CollaboratorUnavailableError.
Saves are version-checked: a stale expected_version raises
ConcurrencyConflictError and writes nothing.
"""
from datetime import date
from typing import Any, Optional, Protocol

from hunter_engine.models.profile import HunterProfile, StatHistoryEntry
from hunter_engine.models.mission import Mission
from hunter_engine.models.raid import BossRaid
from hunter_engine.models.achievement import Achievement


class ProfileRepository(Protocol):
    async def load_profile(self, user_id: str) -> HunterProfile:
        """Raises NotFoundError if the user has no profile"""
        ...

    async def create_profile(self, profile: HunterProfile) -> HunterProfile:
        """Insert if absent; returns the stored profile either way"""
        ...

    async def save_profile(
        self,
        user_id: str,
        fields: dict[str, Any],
        expected_version: int,
        reward_key: Optional[str] = None,
        history: Optional[list[StatHistoryEntry]] = None
    ) -> HunterProfile:
        """
        Atomic partial update keyed by persisted column names

        reward_key is added to the user's reward ledger and history is
        appended in the same write; all of it lands or none of it does.
        """
        ...

    async def is_reward_granted(self, user_id: str, reward_key: str) -> bool:
        ...


class MissionRepository(Protocol):
    async def list_missions_for_date(self, user_id: str, on_date: date) -> list[Mission]:
        ...

    async def get_mission(self, mission_id: str) -> Mission:
        ...

    async def generate_missions_if_absent(self, user_id: str, on_date: date, missions: list[Mission]) -> bool:
        """Insert the set only when (user, date) has none; True if created"""
        ...

    async def save_mission(self, mission: Mission) -> Mission:
        """Version-checked against mission.version"""
        ...


class RaidRepository(Protocol):
    async def list_open_raids(self, user_id: str) -> list[BossRaid]:
        """Raids whose reward has not been granted yet, oldest first"""
        ...

    async def get_raid(self, raid_id: str) -> BossRaid:
        ...

    async def seed_raids_if_absent(self, user_id: str, raids: list[BossRaid]) -> bool:
        """Insert the set only when the user has no uncompleted raid; True if created"""
        ...

    async def save_raid(self, raid: BossRaid) -> BossRaid:
        ...


class AchievementRepository(Protocol):
    async def get_achievement(self, user_id: str, key: str) -> Optional[Achievement]:
        ...

    async def insert_achievement_if_absent(self, user_id: str, key: str, record: Achievement) -> bool:
        """True if a new row was created"""
        ...

    async def list_achievements(self, user_id: str) -> list[Achievement]:
        ...


class StatHistoryRepository(Protocol):
    async def list_stat_history(self, user_id: str) -> list[StatHistoryEntry]:
        ...


class ProgressionStore(
    ProfileRepository,
    MissionRepository,
    RaidRepository,
    AchievementRepository,
    StatHistoryRepository,
    Protocol,
):
    """A backend implementing every repository"""
