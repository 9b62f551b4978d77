"""
XP and Leveling System

Pure level-up resolution for hunter profiles.

Leveling Curve:
- Level N needs N * 100 XP to reach level N + 1
- Every level gained grants one stat point
- Levels are never lost; negative deltas only drain current_xp down to 0

XP Award Rules:
- Workout: base(intensity) * duration / 10 (low 1, medium 2, high 3, extreme 4)
- Healthy meal: +2 XP, unhealthy meal: -1 XP
- Mission completion: mission.xp_reward
- All required missions done: daily bonus
- Boss raid completion: raid.reward_xp
"""

import math
import logging
from typing import Union

from hunter_engine import config
from hunter_engine.exceptions import InvariantViolationError
from hunter_engine.models.profile import HunterProfile
from hunter_engine.models.results import XPState, XPResult

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 100

WORKOUT_INTENSITY_BASE = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "extreme": 4,
}


def xp_threshold_for_level(level: int) -> int:
    """XP needed to go from `level` to `level + 1`"""
    return level * XP_PER_LEVEL


def check_invariants(state: XPState) -> None:
    """
    Fail fast on a state that breaks the XP contract

    These are programming errors, never user errors, so nothing is clamped.
    """
    problems = []
    if state.level < 1:
        problems.append("level < 1")
    if state.xp_to_next_level != xp_threshold_for_level(state.level):
        problems.append("xp_to_next_level != level * 100")
    if state.current_xp < 0:
        problems.append("current_xp < 0")
    if state.current_xp >= state.xp_to_next_level:
        problems.append("current_xp >= xp_to_next_level")
    if state.available_points < 0:
        problems.append("available_points < 0")
    if state.total_xp < 0:
        problems.append("total_xp < 0")

    if problems:
        raise InvariantViolationError(
            f"Invalid XP state: {', '.join(problems)}",
            state=state.model_dump(),
            operation="apply_xp"
        )


def xp_state_of(profile: HunterProfile) -> XPState:
    return XPState(
        total_xp=profile.total_xp,
        current_xp=profile.current_xp,
        level=profile.level,
        available_points=profile.available_points,
        xp_to_next_level=profile.xp_to_next_level,
    )


def apply_xp(state: Union[XPState, HunterProfile], delta: int) -> XPResult:
    """
    Apply an XP delta and resolve every level-up it causes

    Args:
        state: Current XP fields (an XPState or a whole profile)
        delta: XP to add; negative values come from unhealthy meals and
            missed-mission penalties

    Returns:
        XPResult with the updated state, levels_gained, and the
        clamp-adjusted delta actually applied to total_xp
    """
    if isinstance(state, HunterProfile):
        state = xp_state_of(state)

    check_invariants(state)

    if delta == 0:
        return XPResult(state=state.model_copy(), levels_gained=0, applied_delta=0)

    current_xp = state.current_xp + delta
    if current_xp < 0:
        # No de-leveling: drain the current level only
        current_xp = 0
    applied_delta = current_xp - state.current_xp

    level = state.level
    available_points = state.available_points
    xp_to_next = state.xp_to_next_level
    levels_gained = 0

    while current_xp >= xp_to_next and current_xp > 0:
        current_xp -= xp_to_next
        level += 1
        available_points += 1
        xp_to_next = xp_threshold_for_level(level)
        levels_gained += 1

    new_state = XPState(
        total_xp=max(0, state.total_xp + applied_delta),
        current_xp=current_xp,
        level=level,
        available_points=available_points,
        xp_to_next_level=xp_to_next,
    )
    check_invariants(new_state)

    if applied_delta != delta:
        logger.debug(f"XP delta {delta} clamped to {applied_delta} (current_xp floor)")

    return XPResult(state=new_state, levels_gained=levels_gained, applied_delta=applied_delta)


def xp_for_workout(intensity: str, duration_minutes: int) -> int:
    """
    Calculate XP for a logged workout

    Args:
        intensity: low, medium, high or extreme (unknown values count as medium)
        duration_minutes: Session length

    Returns:
        XP amount to award
    """
    base = WORKOUT_INTENSITY_BASE.get(intensity, 2)
    return math.floor(base * (max(duration_minutes, 0) / 10))


def xp_for_meal(is_healthy: bool) -> int:
    """XP delta for a nutrition log entry"""
    return config.HEALTHY_MEAL_XP if is_healthy else config.UNHEALTHY_MEAL_XP
