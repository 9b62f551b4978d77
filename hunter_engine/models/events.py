"""Event-source models"""
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, Any
from uuid import uuid4
from pydantic import BaseModel, Field

from hunter_engine.models.mission import ExerciseType


class EventKind(str, Enum):
    """Where a progress event came from"""
    WORKOUT = "workout"
    NUTRITION = "nutrition"
    HYDRATION = "hydration"
    MISSION_MANUAL = "mission_manual"
    VOICE = "voice"


class GameEvent(BaseModel):
    """
    "Amount X of kind K occurred"

    request_id lets the caller deduplicate re-submitted amount-based events.
    """
    kind: EventKind
    amount: float
    unit: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    exercise_type: Optional[ExerciseType] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))
    metadata: dict[str, Any] = Field(default_factory=dict)


class CommandIntent(str, Enum):
    """Recognised voice/chat intents"""
    EXERCISE_COUNT = "exercise_count"
    HYDRATION_LOG = "hydration_log"
    NUTRITION_LOG = "nutrition_log"
    STATUS_CHECK = "status_check"
    MISSION_STATUS = "mission_status"
    UNKNOWN = "unknown"


class VoiceCommand(BaseModel):
    """Parsed transcript from the voice assistant or chat box"""
    transcript: str
    intent: CommandIntent = CommandIntent.UNKNOWN
    parameters: dict[str, Any] = Field(default_factory=dict)
    response: str = "Command not recognized"
    event: Optional[GameEvent] = None
