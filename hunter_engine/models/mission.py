"""Daily mission models"""
from enum import Enum
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, Field, model_validator


class MissionType(str, Enum):
    """Mission categories"""
    DAILY_REQUIRED = "daily_required"
    BONUS = "bonus"
    SPECIAL = "special"


class ExerciseType(str, Enum):
    """Category keys that event sources advance"""
    PUSHUPS = "pushups"
    SITUPS = "situps"
    SQUATS = "squats"
    RUNNING = "running"
    WATER = "water"
    NUTRITION = "nutrition"
    WORKOUT = "workout"


class Mission(BaseModel):
    """A mission scoped to one user and one calendar date"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    date: date
    mission_type: MissionType
    title: str
    description: str = ""
    exercise_type: Optional[ExerciseType] = None
    target_value: float = Field(gt=0)
    current_progress: float = Field(default=0, ge=0)
    unit: str = "reps"
    xp_reward: int = Field(default=0, ge=0)
    penalty_xp: int = Field(default=0, le=0)
    completed: bool = False
    completed_at: Optional[datetime] = None
    reward_granted: bool = False
    penalty_applied: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_progress(self) -> "Mission":
        """Progress stays inside [0, target]; completed missions sit at target"""
        if self.current_progress > self.target_value:
            raise ValueError("current_progress cannot exceed target_value")
        if self.completed and self.current_progress != self.target_value:
            raise ValueError("completed missions must have current_progress == target_value")
        return self

    @property
    def is_required(self) -> bool:
        return self.mission_type == MissionType.DAILY_REQUIRED

    @property
    def remaining(self) -> float:
        return self.target_value - self.current_progress


class MissionTemplate(BaseModel):
    """Blueprint for the daily mission set"""
    mission_type: MissionType
    title: str
    description: str
    exercise_type: Optional[ExerciseType]
    target_value: float
    unit: str
    xp_reward: int
    penalty_xp: int = 0

    def build(self, user_id: str, on_date: date) -> Mission:
        return Mission(
            user_id=user_id,
            date=on_date,
            mission_type=self.mission_type,
            title=self.title,
            description=self.description,
            exercise_type=self.exercise_type,
            target_value=self.target_value,
            unit=self.unit,
            xp_reward=self.xp_reward,
            penalty_xp=self.penalty_xp,
        )
