"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from uuid import uuid4


class Rarity(str, Enum):
    """Achievement rarity, lowest to highest"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"
    MYTHIC = "mythic"


class AchievementDefinition(BaseModel):
    """Static milestone definition"""
    key: str
    title: str
    description: str
    icon: str
    rarity: Rarity
    threshold: Optional[int] = None


class Achievement(BaseModel):
    """User's unlocked achievement"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    achievement_key: str
    title: str
    description: str
    icon: str = "🏆"
    rarity: Rarity = Rarity.COMMON
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
