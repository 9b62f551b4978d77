"""Result models returned by the progression engine"""
from typing import Optional
from pydantic import BaseModel, Field

from hunter_engine.models.profile import HunterProfile, StatHistoryEntry
from hunter_engine.models.mission import Mission
from hunter_engine.models.raid import BossRaid
from hunter_engine.models.achievement import Achievement


class XPState(BaseModel):
    """The five fields ProgressionMath reads and writes"""
    total_xp: int
    current_xp: int
    level: int
    available_points: int
    xp_to_next_level: int


class XPResult(BaseModel):
    """Output of apply_xp"""
    state: XPState
    levels_gained: int = 0
    applied_delta: int = 0


class XPAward(BaseModel):
    """Outcome of a persisted XP grant"""
    profile: HunterProfile
    xp_awarded: int
    old_level: int
    new_level: int
    levels_gained: int = 0
    # The reward key was already in the ledger; nothing was written
    already_granted: bool = False

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


class MissionProgress(BaseModel):
    mission: Mission
    transitioned: bool = False
    xp_award: Optional[XPAward] = None


class RaidProgress(BaseModel):
    raid: BossRaid
    transitioned: bool = False
    xp_award: Optional[XPAward] = None
    stat_changes: list[StatHistoryEntry] = Field(default_factory=list)
    achievement: Optional[Achievement] = None


class MissionSummary(BaseModel):
    """Aggregate counts the mission board shows"""
    total_required: int = 0
    completed_required: int = 0
    total_bonus: int = 0
    completed_bonus: int = 0

    @property
    def all_required_completed(self) -> bool:
        return self.total_required > 0 and self.completed_required == self.total_required


class ProgressionResult(BaseModel):
    """What the UI layer receives after any engine call"""
    profile: HunterProfile
    xp_awarded: int = 0
    leveled_up: bool = False
    new_level: int = 1
    levels_gained: int = 0
    missions_completed: list[Mission] = Field(default_factory=list)
    raids_completed: list[BossRaid] = Field(default_factory=list)
    achievements_unlocked: list[Achievement] = Field(default_factory=list)
    message: str = ""
