"""
Input validation at the engine boundary

Everything here runs before any state is read or written, so a rejected
call never leaves partial changes behind.
"""

import logging
import math
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from hunter_engine.exceptions import InvalidInputError
from hunter_engine.models.profile import StatKey

logger = logging.getLogger(__name__)


class RewardStats(BaseModel):
    """Boss raid stat bonuses restricted to the closed StatKey set"""
    bonuses: dict[StatKey, int] = Field(default_factory=dict)


def parse_stat_key(value: Union[str, StatKey], user_id: Optional[str] = None) -> StatKey:
    """Resolve a stat key or reject it"""
    if isinstance(value, StatKey):
        return value
    try:
        return StatKey(str(value).lower())
    except ValueError:
        raise InvalidInputError(
            f"Unknown stat '{value}'. Valid stats: {', '.join(s.value for s in StatKey)}",
            field="stat_key",
            value=value,
            user_id=user_id
        )


def parse_reward_stats(raw: Optional[Mapping[Any, Any]], user_id: Optional[str] = None) -> dict[StatKey, int]:
    """
    Validate a loosely-typed reward map

    Unknown keys and non-positive bonuses are rejected instead of being
    written through to the profile.
    """
    if not raw:
        return {}
    try:
        parsed = RewardStats(bonuses=dict(raw)).bonuses
    except PydanticValidationError as e:
        raise InvalidInputError(
            f"Invalid reward stats: {e.errors()[0]['msg']}",
            field="reward_stats",
            value=dict(raw),
            user_id=user_id
        )
    for stat, bonus in parsed.items():
        if bonus <= 0:
            raise InvalidInputError(
                f"Reward for {stat.value} must be a positive integer",
                field="reward_stats",
                value=dict(raw),
                user_id=user_id
            )
    return parsed


def require_positive_amount(amount: Any, field: str = "amount", user_id: Optional[str] = None) -> float:
    """Progress amounts must be finite and strictly positive"""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidInputError("Amount must be a number", field=field, value=amount, user_id=user_id)
    if math.isnan(value) or math.isinf(value) or value <= 0:
        raise InvalidInputError("Amount must be positive", field=field, value=amount, user_id=user_id)
    return value
