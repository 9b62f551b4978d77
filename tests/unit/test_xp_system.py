"""Unit tests for XP and leveling math (hunter_engine/gamification/xp_system.py)"""
import random

import pytest

from hunter_engine.exceptions import InvariantViolationError
from hunter_engine.gamification.xp_system import (
    apply_xp,
    check_invariants,
    xp_for_meal,
    xp_for_workout,
    xp_threshold_for_level,
)
from hunter_engine.models.profile import HunterProfile
from hunter_engine.models.results import XPState


def make_state(level=1, current_xp=0, total_xp=0, available_points=0):
    return XPState(
        total_xp=total_xp,
        current_xp=current_xp,
        level=level,
        available_points=available_points,
        xp_to_next_level=level * 100,
    )


# ============================================================================
# Level-up Resolution
# ============================================================================

def test_single_level_up():
    """90/100 XP plus 25 crosses into level 2 with 15 carried over"""
    result = apply_xp(make_state(level=1, current_xp=90, total_xp=90), 25)

    assert result.state.level == 2
    assert result.state.current_xp == 15
    assert result.state.xp_to_next_level == 200
    assert result.state.available_points == 1
    assert result.state.total_xp == 115
    assert result.levels_gained == 1
    assert result.applied_delta == 25


def test_large_delta_resolves_every_level():
    result = apply_xp(make_state(), 350)

    # 350 - 100 (L1) - 200 (L2) = 50 into level 3
    assert result.state.level == 3
    assert result.state.current_xp == 50
    assert result.state.xp_to_next_level == 300
    assert result.state.available_points == 2
    assert result.levels_gained == 2


def test_exact_threshold_levels_up_with_zero_carry():
    result = apply_xp(make_state(), 100)

    assert result.state.level == 2
    assert result.state.current_xp == 0
    assert result.levels_gained == 1


def test_zero_delta_is_noop():
    state = make_state(level=3, current_xp=42, total_xp=342, available_points=2)
    result = apply_xp(state, 0)

    assert result.state == state
    assert result.levels_gained == 0
    assert result.applied_delta == 0


# ============================================================================
# Negative Deltas
# ============================================================================

def test_unhealthy_meal_at_zero_xp_is_clamped():
    """A -1 delta at current_xp 0 changes nothing and never de-levels"""
    state = make_state(level=2, current_xp=0, total_xp=100, available_points=1)
    result = apply_xp(state, -1)

    assert result.state.current_xp == 0
    assert result.state.level == 2
    assert result.state.total_xp == 100
    assert result.applied_delta == 0
    assert result.levels_gained == 0


def test_negative_delta_only_removes_what_is_there():
    state = make_state(level=2, current_xp=5, total_xp=105, available_points=1)
    result = apply_xp(state, -10)

    assert result.state.current_xp == 0
    assert result.applied_delta == -5
    assert result.state.total_xp == 100
    assert result.state.level == 2


# ============================================================================
# Invariants
# ============================================================================

def test_rejects_current_xp_at_threshold():
    bad = XPState(total_xp=150, current_xp=150, level=1, available_points=0, xp_to_next_level=100)

    with pytest.raises(InvariantViolationError):
        apply_xp(bad, 10)


def test_rejects_mismatched_threshold():
    bad = XPState(total_xp=100, current_xp=0, level=2, available_points=1, xp_to_next_level=100)

    with pytest.raises(InvariantViolationError) as exc_info:
        check_invariants(bad)

    assert "xp_to_next_level" in exc_info.value.message


def test_invariants_hold_across_random_sequences():
    rng = random.Random(42)
    state = make_state()

    for _ in range(500):
        delta = rng.choice([rng.randint(-20, 0), rng.randint(0, 450)])
        result = apply_xp(state, delta)

        assert 0 <= result.state.current_xp < result.state.xp_to_next_level
        assert result.state.xp_to_next_level == xp_threshold_for_level(result.state.level)
        assert result.state.level >= state.level
        assert result.state.available_points == state.available_points + result.levels_gained
        assert result.state.total_xp == state.total_xp + result.applied_delta
        state = result.state


def test_accepts_whole_profile():
    profile = HunterProfile(id="u1", current_xp=90, total_xp=90)
    result = apply_xp(profile, 25)

    assert result.state.level == 2
    assert profile.level == 1  # input untouched


# ============================================================================
# XP Award Rules
# ============================================================================

@pytest.mark.parametrize("intensity,minutes,expected", [
    ("low", 30, 3),
    ("medium", 30, 6),
    ("high", 30, 9),
    ("extreme", 45, 18),
    ("unknown", 10, 2),
    ("low", 5, 0),
])
def test_xp_for_workout(intensity, minutes, expected):
    assert xp_for_workout(intensity, minutes) == expected


def test_xp_for_meal():
    assert xp_for_meal(True) == 2
    assert xp_for_meal(False) == -1
