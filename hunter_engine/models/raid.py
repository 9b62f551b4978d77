"""Boss raid models"""
from enum import Enum
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, Field, field_validator

from hunter_engine.models.profile import StatKey


class BossType(str, Enum):
    """Recognised raid kinds; each has exactly one progress handler"""
    WORKOUT_COUNT = "workout_count"
    LEVEL_TARGET = "level_target"
    DAILY_STREAK = "daily_streak"


class RaidDifficulty(str, Enum):
    """Raid rank, weakest to strongest"""
    E = "E"
    D = "D"
    C = "C"
    B = "B"
    A = "A"
    S = "S"
    SS = "SS"
    SSS = "SSS"

    @classmethod
    def _missing_(cls, value):
        # Older raids were tagged with descriptive labels
        aliases = {"hard": cls.A, "extreme": cls.SS, "legendary": cls.SSS}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class RaidTrigger(str, Enum):
    """Events that can move a raid forward"""
    WORKOUT = "workout"
    LEVEL_CHECK = "level_check"
    ALL_REQUIRED_COMPLETED = "all_required_completed"


class BossRaid(BaseModel):
    """A long-running challenge, not bound to a date"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    title: str
    description: str = ""
    boss_type: str
    difficulty: RaidDifficulty = RaidDifficulty.E
    target_value: int = Field(gt=0)
    current_progress: int = Field(default=0, ge=0)
    reward_description: str = ""
    reward_stats: dict[StatKey, int] = Field(default_factory=dict)
    reward_xp: int = Field(default=0, ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None
    reward_granted: bool = False
    # Day key of the last all_required_completed trigger counted
    progress_marker: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("reward_stats")
    @classmethod
    def positive_bonuses(cls, v: dict[StatKey, int]) -> dict[StatKey, int]:
        for stat, bonus in v.items():
            if bonus <= 0:
                raise ValueError(f"reward for {stat.value} must be a positive integer")
        return v

    @property
    def kind(self) -> Optional[BossType]:
        """Recognised BossType, or None for an inert raid"""
        try:
            return BossType(self.boss_type)
        except ValueError:
            return None
