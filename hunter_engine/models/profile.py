"""Hunter profile models"""
from enum import Enum
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class StatKey(str, Enum):
    """Closed set of allocatable hunter stats"""
    STR = "str"
    AGI = "agi"
    INT = "int"
    VIT = "vit"
    CHA = "cha"


# StatKey -> model attribute ('str' and 'int' would shadow builtins)
STAT_FIELDS: dict[StatKey, str] = {
    StatKey.STR: "str_",
    StatKey.AGI: "agi",
    StatKey.INT: "int_",
    StatKey.VIT: "vit",
    StatKey.CHA: "cha",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HunterProfile(BaseModel):
    """
    One per user. Serialized with by_alias=True so stats are persisted as
    str/agi/int/vit/cha.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str = "hunter"
    level: int = Field(default=1, ge=1)
    total_xp: int = Field(default=0, ge=0)
    current_xp: int = Field(default=0, ge=0)
    xp_to_next_level: int = Field(default=100, ge=100)
    str_: int = Field(default=1, ge=1, alias="str")
    agi: int = Field(default=1, ge=1)
    int_: int = Field(default=1, ge=1, alias="int")
    vit: int = Field(default=1, ge=1)
    cha: int = Field(default=1, ge=1)
    available_points: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    max_streak: int = Field(default=0, ge=0)
    total_workouts: int = Field(default=0, ge=0)
    total_missions_completed: int = Field(default=0, ge=0)
    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_stat(self, stat: StatKey) -> int:
        return getattr(self, STAT_FIELDS[stat])

    def stats(self) -> dict[StatKey, int]:
        """All five stats keyed by StatKey"""
        return {key: self.get_stat(key) for key in StatKey}

    def to_record(self) -> dict:
        """Persisted column mapping"""
        return self.model_dump(by_alias=True)


class StatHistoryEntry(BaseModel):
    """Audit record for a single stat change"""
    user_id: str
    stat_key: StatKey
    old_value: int
    new_value: int
    reason: str
    recorded_at: datetime = Field(default_factory=_utcnow)
    id: Optional[int] = None
