"""Unit tests for daily missions (hunter_engine/gamification/missions.py)"""
import asyncio
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from hunter_engine.exceptions import (
    CollaboratorUnavailableError,
    ConcurrencyConflictError,
    InvalidInputError,
    NotFoundError,
    RewardPendingError,
)
from hunter_engine.gamification.missions import DAILY_MISSION_TEMPLATES
from hunter_engine.models.mission import ExerciseType, MissionType


async def mission_for(tracker, user_id, on_date, exercise_type):
    missions = await tracker.list_for_date(user_id, on_date)
    return next(m for m in missions if m.exercise_type == exercise_type)


# ============================================================================
# Generation
# ============================================================================

@pytest.mark.asyncio
async def test_generate_for_date_creates_daily_set(mission_tracker, hunter, today):
    missions = await mission_tracker.generate_for_date(hunter.id, today)

    assert len(missions) == len(DAILY_MISSION_TEMPLATES) == 6
    assert sum(1 for m in missions if m.mission_type == MissionType.DAILY_REQUIRED) == 4
    assert all(m.current_progress == 0 and not m.completed for m in missions)
    assert all(m.date == today for m in missions)


@pytest.mark.asyncio
async def test_generate_for_date_is_idempotent(mission_tracker, hunter, today):
    first = await mission_tracker.generate_for_date(hunter.id, today)
    second = await mission_tracker.generate_for_date(hunter.id, today)

    assert {m.id for m in first} == {m.id for m in second}


@pytest.mark.asyncio
async def test_generate_for_different_dates(mission_tracker, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)
    other = await mission_tracker.generate_for_date(hunter.id, date(2024, 6, 2))

    assert len(other) == 6
    assert len(await mission_tracker.list_for_date(hunter.id, today)) == 6


# ============================================================================
# Progress and Completion
# ============================================================================

@pytest.mark.asyncio
async def test_progress_clamps_and_completes_once(mission_tracker, profile_store, hunter, today):
    """80/100 push-ups plus 30 completes at exactly 100 and pays out once"""
    await mission_tracker.generate_for_date(hunter.id, today)
    pushups = await mission_for(mission_tracker, hunter.id, today, ExerciseType.PUSHUPS)

    partial = await mission_tracker.advance_progress(pushups.id, 80)
    assert not partial.transitioned
    assert partial.xp_award is None

    done = await mission_tracker.advance_progress(pushups.id, 30)
    assert done.transitioned
    assert done.mission.current_progress == 100
    assert done.mission.completed
    assert done.mission.completed_at is not None
    assert done.mission.reward_granted
    assert done.xp_award.xp_awarded == pushups.xp_reward

    again = await mission_tracker.advance_progress(pushups.id, 10)
    assert not again.transitioned
    assert again.mission.current_progress == 100

    profile = await profile_store.get_profile(hunter.id)
    assert profile.total_xp == pushups.xp_reward
    assert profile.total_missions_completed == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, float("nan"), "lots"])
async def test_non_positive_amount_is_rejected(mission_tracker, store, hunter, today, amount):
    await mission_tracker.generate_for_date(hunter.id, today)
    pushups = await mission_for(mission_tracker, hunter.id, today, ExerciseType.PUSHUPS)

    with pytest.raises(InvalidInputError):
        await mission_tracker.advance_progress(pushups.id, amount)

    assert (await store.get_mission(pushups.id)).version == pushups.version


@pytest.mark.asyncio
async def test_advance_unknown_mission(mission_tracker):
    with pytest.raises(NotFoundError):
        await mission_tracker.advance_progress("missing", 5)


@pytest.mark.asyncio
async def test_advance_for_exercise_tracks_fractional_distance(mission_tracker, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)

    progress = await mission_tracker.advance_for_exercise(hunter.id, ExerciseType.RUNNING, 2.5, today)

    assert progress.mission.current_progress == 2.5
    assert progress.mission.unit == "km"
    assert not progress.transitioned


@pytest.mark.asyncio
async def test_many_fractional_steps_reach_the_target(mission_tracker, hunter, today):
    """One hundred 0.1 km steps complete the 10 km run"""
    await mission_tracker.generate_for_date(hunter.id, today)

    for _ in range(99):
        progress = await mission_tracker.advance_for_exercise(hunter.id, ExerciseType.RUNNING, 0.1, today)
        assert not progress.transitioned

    last = await mission_tracker.advance_for_exercise(hunter.id, ExerciseType.RUNNING, 0.1, today)

    assert last.transitioned
    assert last.mission.completed
    assert last.mission.current_progress == 10


@pytest.mark.asyncio
async def test_advance_for_exercise_without_open_mission(mission_tracker, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)

    assert await mission_tracker.advance_for_exercise(hunter.id, ExerciseType.WORKOUT, 1, today) is None


@pytest.mark.asyncio
async def test_complete_mission_manually(mission_tracker, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)
    running = await mission_for(mission_tracker, hunter.id, today, ExerciseType.RUNNING)

    progress = await mission_tracker.complete_mission(running.id)

    assert progress.transitioned
    assert progress.mission.current_progress == running.target_value
    assert progress.xp_award.xp_awarded == 30


@pytest.mark.asyncio
async def test_concurrent_completion_grants_xp_once(mission_tracker, profile_store, hunter, today):
    """Two callers finishing the same mission: one transition, one XP grant"""
    await mission_tracker.generate_for_date(hunter.id, today)
    squats = await mission_for(mission_tracker, hunter.id, today, ExerciseType.SQUATS)

    results = await asyncio.gather(
        mission_tracker.complete_mission(squats.id),
        mission_tracker.complete_mission(squats.id),
        return_exceptions=True,
    )

    transitions = [r for r in results if not isinstance(r, Exception) and r.transitioned]
    conflicts = [r for r in results if isinstance(r, ConcurrencyConflictError)]
    assert len(transitions) == 1
    assert len(conflicts) == 1

    # The loser re-drives the same operation and sees a completed mission
    retry = await mission_tracker.complete_mission(squats.id)
    assert not retry.transitioned

    profile = await profile_store.get_profile(hunter.id)
    assert profile.total_xp == squats.xp_reward
    assert profile.total_missions_completed == 1


# ============================================================================
# Reward Failure Handling
# ============================================================================

@pytest.mark.asyncio
async def test_failed_reward_keeps_completion_and_is_paid_on_next_advance(
    mission_tracker, profile_store, store, hunter, today
):
    await mission_tracker.generate_for_date(hunter.id, today)
    situps = await mission_for(mission_tracker, hunter.id, today, ExerciseType.SITUPS)

    outage = AsyncMock(side_effect=CollaboratorUnavailableError("db down", service="database"))
    with patch.object(profile_store, "apply_xp", outage):
        with pytest.raises(RewardPendingError) as exc_info:
            await mission_tracker.advance_progress(situps.id, 100)

    assert exc_info.value.retryable
    stored = await store.get_mission(situps.id)
    assert stored.completed
    assert not stored.reward_granted
    assert (await profile_store.get_profile(hunter.id)).total_xp == 0

    # Re-driving pays the pending reward instead of adding progress
    retry = await mission_tracker.advance_progress(situps.id, 1)
    assert retry.transitioned
    assert retry.xp_award.xp_awarded == situps.xp_reward
    assert retry.mission.reward_granted
    assert retry.mission.current_progress == 100

    repeat = await mission_tracker.grant_pending_reward(situps.id)
    assert repeat.xp_award is None
    assert not (await mission_tracker.complete_mission(situps.id)).transitioned

    profile = await profile_store.get_profile(hunter.id)
    assert profile.total_xp == situps.xp_reward
    assert profile.total_missions_completed == 1


@pytest.mark.asyncio
async def test_grant_pending_reward_pays_once(mission_tracker, profile_store, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)
    squats = await mission_for(mission_tracker, hunter.id, today, ExerciseType.SQUATS)

    outage = AsyncMock(side_effect=ConcurrencyConflictError("stale", record_type="HunterProfile"))
    with patch.object(profile_store, "apply_xp", outage):
        with pytest.raises(RewardPendingError):
            await mission_tracker.complete_mission(squats.id)

    granted = await mission_tracker.grant_pending_reward(squats.id)
    assert granted.transitioned
    assert granted.xp_award.xp_awarded == squats.xp_reward

    repeat = await mission_tracker.grant_pending_reward(squats.id)
    assert repeat.xp_award is None
    assert (await profile_store.get_profile(hunter.id)).total_xp == squats.xp_reward


@pytest.mark.asyncio
async def test_reward_flag_failure_does_not_pay_twice(
    mission_tracker, profile_store, store, hunter, today, fail_on_call
):
    """XP landed but the reward_granted flag did not: the retry only saves the flag"""
    await mission_tracker.generate_for_date(hunter.id, today)
    pushups = await mission_for(mission_tracker, hunter.id, today, ExerciseType.PUSHUPS)

    # save_mission #1 completes the mission, #2 flags the reward
    flaky = fail_on_call(store.save_mission, 2, CollaboratorUnavailableError("db down", service="database"))
    with patch.object(store, "save_mission", flaky):
        with pytest.raises(CollaboratorUnavailableError):
            await mission_tracker.complete_mission(pushups.id)

    assert (await profile_store.get_profile(hunter.id)).total_xp == 20
    assert not (await store.get_mission(pushups.id)).reward_granted

    retry = await mission_tracker.complete_mission(pushups.id)

    assert not retry.transitioned
    assert retry.xp_award.already_granted
    assert retry.mission.reward_granted
    profile = await profile_store.get_profile(hunter.id)
    assert profile.total_xp == 20
    assert profile.total_missions_completed == 1


@pytest.mark.asyncio
async def test_terminal_reward_error_propagates(mission_tracker, profile_store, hunter, today):
    await mission_tracker.generate_for_date(hunter.id, today)
    situps = await mission_for(mission_tracker, hunter.id, today, ExerciseType.SITUPS)

    missing = AsyncMock(side_effect=NotFoundError("gone", record_type="HunterProfile", record_id=hunter.id))
    with patch.object(profile_store, "apply_xp", missing):
        with pytest.raises(NotFoundError):
            await mission_tracker.advance_progress(situps.id, 100)


# ============================================================================
# Aggregates and Penalties
# ============================================================================

@pytest.mark.asyncio
async def test_summarize(mission_tracker, hunter, today):
    empty = await mission_tracker.summarize(hunter.id, today)
    assert empty.total_required == 0
    assert not empty.all_required_completed

    missions = await mission_tracker.generate_for_date(hunter.id, today)
    for mission in missions:
        if mission.is_required:
            await mission_tracker.complete_mission(mission.id)

    summary = await mission_tracker.summarize(hunter.id, today)
    assert summary.total_required == summary.completed_required == 4
    assert summary.all_required_completed
    assert (summary.total_bonus, summary.completed_bonus) == (2, 0)


@pytest.mark.asyncio
async def test_missed_penalties_apply_once(mission_tracker, profile_store, hunter, today):
    await profile_store.apply_xp(hunter.id, 50)
    await mission_tracker.generate_for_date(hunter.id, today)
    pushups = await mission_for(mission_tracker, hunter.id, today, ExerciseType.PUSHUPS)
    await mission_tracker.complete_mission(pushups.id)

    penalized = await mission_tracker.apply_missed_penalties(hunter.id, today)

    assert {p.mission.exercise_type for p in penalized} == {
        ExerciseType.SITUPS, ExerciseType.SQUATS, ExerciseType.RUNNING
    }
    assert all(p.mission.penalty_applied for p in penalized)
    profile = await profile_store.get_profile(hunter.id)
    assert profile.current_xp == 50 + 20 - 10 - 10 - 15
    assert profile.level == 1

    assert await mission_tracker.apply_missed_penalties(hunter.id, today) == []
    assert (await profile_store.get_profile(hunter.id)).current_xp == 35


@pytest.mark.asyncio
async def test_missed_penalty_not_repeated_when_flag_save_fails(
    mission_tracker, profile_store, store, hunter, today, fail_on_call
):
    await profile_store.apply_xp(hunter.id, 50)
    await mission_tracker.generate_for_date(hunter.id, today)

    flaky = fail_on_call(store.save_mission, 1, CollaboratorUnavailableError("db down", service="database"))
    with patch.object(store, "save_mission", flaky):
        with pytest.raises(CollaboratorUnavailableError):
            await mission_tracker.apply_missed_penalties(hunter.id, today)

    # The first penalty landed before its flag failed
    assert (await profile_store.get_profile(hunter.id)).current_xp == 40

    penalized = await mission_tracker.apply_missed_penalties(hunter.id, today)

    assert len(penalized) == 4
    assert (await profile_store.get_profile(hunter.id)).current_xp == 50 - 10 - 10 - 10 - 15
