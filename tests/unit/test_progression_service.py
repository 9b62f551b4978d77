"""Unit tests for ProgressionService (hunter_engine/services/progression_service.py)"""
from unittest.mock import patch

import pytest

from hunter_engine.exceptions import (
    CollaboratorUnavailableError,
    ConcurrencyConflictError,
    InvalidInputError,
    NotFoundError,
)
from hunter_engine.models.events import EventKind, GameEvent
from hunter_engine.models.mission import ExerciseType
from hunter_engine.models.raid import BossRaid, BossType
from hunter_engine.resilience import retry_with_backoff


async def missions_by_type(service, user_id, on_date):
    missions = await service.missions.list_for_date(user_id, on_date)
    return {m.exercise_type: m for m in missions}


async def raid_named(service, user_id, title):
    raids = await service.raids.list_open(user_id)
    return next(r for r in raids if r.title == title)


# ============================================================================
# Lifecycle
# ============================================================================

@pytest.mark.asyncio
async def test_register_and_start_day(service, test_user_id, today):
    registered = await service.register_hunter(test_user_id, "Jinwoo")
    assert registered.profile.level == 1
    assert "Jinwoo" in registered.message

    started = await service.start_day(test_user_id, today)

    assert "6 missions" in started.message
    assert len(await service.missions.list_for_date(test_user_id, today)) == 6
    assert len(await service.raids.list_open(test_user_id)) == 4


@pytest.mark.asyncio
async def test_register_is_idempotent(service, test_user_id):
    await service.register_hunter(test_user_id, "Jinwoo")
    await service.register_hunter(test_user_id, "Jinwoo")

    assert len(await service.raids.list_open(test_user_id)) == 4


@pytest.mark.asyncio
async def test_close_day_resets_streak_and_penalizes(service, set_profile_fields, hunter, today):
    await service.start_day(hunter.id, today)
    await set_profile_fields(hunter.id, current_streak=3, max_streak=3)

    result = await service.close_day(hunter.id, today)

    assert result.profile.current_streak == 0
    assert result.profile.max_streak == 3
    assert result.profile.current_xp == 0
    assert "Streak reset" in result.message


# ============================================================================
# Workouts
# ============================================================================

@pytest.mark.asyncio
async def test_log_workout_awards_xp_and_first_workout(service, hunter):
    result = await service.log_workout(hunter.id, "high", 30)

    assert result.xp_awarded == 9
    assert result.profile.total_workouts == 1
    assert [a.achievement_key for a in result.achievements_unlocked] == ["first_workout"]
    assert "+9 XP" in result.message


@pytest.mark.asyncio
async def test_log_workout_advances_workout_raids(service, test_user_id):
    await service.register_hunter(test_user_id)

    await service.log_workout(test_user_id, "medium", 20)

    raid = await raid_named(service, test_user_id, "Iron Initiate")
    assert raid.current_progress == 1


@pytest.mark.asyncio
async def test_log_workout_rejects_bad_duration(service, hunter):
    with pytest.raises(InvalidInputError):
        await service.log_workout(hunter.id, "high", 0)


@pytest.mark.asyncio
async def test_raid_reward_level_up_chains(service, store, hunter):
    """A level-up completes a level_target raid whose XP levels up again"""
    raid = BossRaid(user_id=hunter.id, title="Rookie Gate", boss_type=BossType.LEVEL_TARGET.value,
                    target_value=2, reward_xp=200)
    await store.seed_raids_if_absent(hunter.id, [raid])

    result = await service.log_workout(hunter.id, "extreme", 250)

    assert result.profile.level == 3
    assert result.levels_gained == 2
    assert result.xp_awarded == 300
    assert [r.id for r in result.raids_completed] == [raid.id]
    keys = {a.achievement_key for a in result.achievements_unlocked}
    assert keys == {"first_workout", f"boss_{raid.id}"}
    assert "⚔️ Boss defeated: Rookie Gate" in result.message


# ============================================================================
# Missions
# ============================================================================

@pytest.mark.asyncio
async def test_completing_all_required_missions_closes_the_day(service, test_user_id, today):
    await service.register_hunter(test_user_id)
    await service.start_day(test_user_id, today)
    missions = await missions_by_type(service, test_user_id, today)

    for exercise in (ExerciseType.PUSHUPS, ExerciseType.SITUPS, ExerciseType.SQUATS):
        await service.complete_mission(test_user_id, missions[exercise].id)
    last = await service.complete_mission(test_user_id, missions[ExerciseType.RUNNING].id)

    # 30 for the run plus the 10 XP daily bonus takes 90 -> 100
    assert last.xp_awarded == 40
    assert last.leveled_up
    assert last.profile.level == 2
    assert last.profile.current_streak == 1
    assert "🎉 LEVEL UP! You are now level 2" in last.message

    fire_streak = await raid_named(service, test_user_id, "Fire Streak")
    assert fire_streak.current_progress == 1
    awakened = await raid_named(service, test_user_id, "Awakened Hunter")
    assert awakened.current_progress == 2

    closed = await service.close_day(test_user_id, today)
    assert closed.profile.current_streak == 1


@pytest.mark.asyncio
async def test_complete_mission_of_other_user(service, store, hunter, today):
    await service.profile_store.create_profile("other-user")
    other = await service.missions.generate_for_date("other-user", today)

    with pytest.raises(NotFoundError):
        await service.complete_mission(hunter.id, other[0].id)

    assert not (await store.get_mission(other[0].id)).completed


@pytest.mark.asyncio
async def test_log_exercise_reports_progress(service, hunter, today):
    await service.start_day(hunter.id, today)

    result = await service.log_exercise(hunter.id, "running", 2.5, today)

    assert "10 km Run: 2.5/10 km" in result.message
    assert result.xp_awarded == 0


@pytest.mark.asyncio
async def test_log_exercise_unknown_type(service, hunter, today):
    with pytest.raises(InvalidInputError):
        await service.log_exercise(hunter.id, "burpees", 10, today)


# ============================================================================
# Re-driving Failed Calls
# ============================================================================

@pytest.mark.asyncio
async def test_retried_complete_mission_pays_reward_after_outage(
    service, store, test_user_id, today, fail_on_call
):
    await service.register_hunter(test_user_id)
    await service.start_day(test_user_id, today)
    squats = (await missions_by_type(service, test_user_id, today))[ExerciseType.SQUATS]

    flaky = fail_on_call(store.save_profile, 1, CollaboratorUnavailableError("db down", service="database"))
    with patch.object(store, "save_profile", flaky):
        result = await retry_with_backoff(service.complete_mission, test_user_id, squats.id, base_delay=0)

    assert result.xp_awarded == 20
    assert result.profile.total_xp == 20
    assert result.profile.total_missions_completed == 1
    assert [m.id for m in result.missions_completed] == [squats.id]
    assert (await store.get_mission(squats.id)).reward_granted


@pytest.mark.asyncio
async def test_retried_last_mission_pays_day_bonus_once(service, store, test_user_id, today, fail_on_call):
    await service.register_hunter(test_user_id)
    await service.start_day(test_user_id, today)
    missions = await missions_by_type(service, test_user_id, today)
    for exercise in (ExerciseType.PUSHUPS, ExerciseType.SITUPS, ExerciseType.SQUATS):
        await service.complete_mission(test_user_id, missions[exercise].id)
    running = missions[ExerciseType.RUNNING]

    # save_profile #1 pays the run, #2 is the daily bonus
    conflict = ConcurrencyConflictError("stale", record_type="HunterProfile", record_id=test_user_id)
    flaky = fail_on_call(store.save_profile, 2, conflict)
    with patch.object(store, "save_profile", flaky):
        result = await retry_with_backoff(service.complete_mission, test_user_id, running.id, base_delay=0)

    assert result.xp_awarded == 10
    assert result.profile.total_xp == 100
    assert result.profile.level == 2
    assert result.profile.current_streak == 1
    assert (await raid_named(service, test_user_id, "Fire Streak")).current_progress == 1

    again = await service.complete_mission(test_user_id, running.id)
    closed = await service.close_day(test_user_id, today)

    assert again.xp_awarded == 0
    assert closed.profile.total_xp == 100
    assert closed.profile.current_streak == 1
    assert (await raid_named(service, test_user_id, "Fire Streak")).current_progress == 1


@pytest.mark.asyncio
async def test_close_day_finishes_a_day_a_failed_call_left_open(service, store, test_user_id, today, fail_on_call):
    await service.register_hunter(test_user_id)
    await service.start_day(test_user_id, today)
    missions = await missions_by_type(service, test_user_id, today)
    for exercise in (ExerciseType.PUSHUPS, ExerciseType.SITUPS, ExerciseType.SQUATS):
        await service.complete_mission(test_user_id, missions[exercise].id)

    outage = CollaboratorUnavailableError("db down", service="database")
    with patch.object(store, "list_open_raids", fail_on_call(store.list_open_raids, 1, outage)):
        with pytest.raises(CollaboratorUnavailableError):
            await service.complete_mission(test_user_id, missions[ExerciseType.RUNNING].id)

    assert (await raid_named(service, test_user_id, "Fire Streak")).current_progress == 0

    closed = await service.close_day(test_user_id, today)

    assert closed.profile.total_xp == 100
    assert closed.profile.current_streak == 1
    assert "Streak reset" not in closed.message
    assert (await raid_named(service, test_user_id, "Fire Streak")).current_progress == 1


@pytest.mark.asyncio
async def test_milestone_missed_by_failed_call_unlocks_later(service, store, hunter, today, fail_on_call):
    outage = CollaboratorUnavailableError("db down", service="database")
    flaky = fail_on_call(store.insert_achievement_if_absent, 1, outage)
    with patch.object(store, "insert_achievement_if_absent", flaky):
        with pytest.raises(CollaboratorUnavailableError):
            await service.log_workout(hunter.id, "high", 30)

    assert await store.get_achievement(hunter.id, "first_workout") is None

    result = await service.close_day(hunter.id, today)

    assert [a.achievement_key for a in result.achievements_unlocked] == ["first_workout"]
    assert result.profile.total_workouts == 1


# ============================================================================
# Nutrition and Hydration
# ============================================================================

@pytest.mark.asyncio
async def test_healthy_meal(service, hunter, today):
    await service.start_day(hunter.id, today)

    result = await service.log_nutrition(hunter.id, True, today)

    assert result.xp_awarded == 2
    nutrition = (await missions_by_type(service, hunter.id, today))[ExerciseType.NUTRITION]
    assert nutrition.current_progress == 1


@pytest.mark.asyncio
async def test_unhealthy_meal_at_zero_xp(service, hunter, today):
    await service.start_day(hunter.id, today)

    result = await service.log_nutrition(hunter.id, False, today)

    assert result.xp_awarded == 0
    assert result.profile.current_xp == 0
    assert result.profile.level == 1
    nutrition = (await missions_by_type(service, hunter.id, today))[ExerciseType.NUTRITION]
    assert nutrition.current_progress == 0


@pytest.mark.asyncio
async def test_hydration_applies_drink_multiplier(service, hunter, today):
    await service.start_day(hunter.id, today)

    await service.log_hydration(hunter.id, 500, "coffee", today)

    water = (await missions_by_type(service, hunter.id, today))[ExerciseType.WATER]
    assert water.current_progress == 300


@pytest.mark.asyncio
@pytest.mark.parametrize("amount,drink", [(500, "soda"), (0, "water"), (-100, "tea")])
async def test_hydration_rejects_bad_input(service, hunter, today, amount, drink):
    with pytest.raises(InvalidInputError):
        await service.log_hydration(hunter.id, amount, drink, today)


# ============================================================================
# Events and Voice Commands
# ============================================================================

@pytest.mark.asyncio
async def test_process_event_workout(service, hunter):
    event = GameEvent(kind=EventKind.WORKOUT, amount=30, metadata={"intensity": "low"})

    result = await service.process_event(hunter.id, event)

    assert result.xp_awarded == 3


@pytest.mark.asyncio
async def test_mission_manual_event_needs_mission_id(service, hunter):
    with pytest.raises(InvalidInputError):
        await service.process_event(hunter.id, GameEvent(kind=EventKind.MISSION_MANUAL, amount=1))


@pytest.mark.asyncio
async def test_voice_event_needs_exercise_type(service, hunter):
    with pytest.raises(InvalidInputError):
        await service.process_event(hunter.id, GameEvent(kind=EventKind.VOICE, amount=5))


@pytest.mark.asyncio
async def test_spanish_voice_command_advances_pushups(service, hunter, today):
    await service.start_day(hunter.id, today)

    result = await service.process_voice_command(hunter.id, "hice 20 flexiones", today)

    assert result.message.startswith("Registrados 20 flexiones")
    pushups = (await missions_by_type(service, hunter.id, today))[ExerciseType.PUSHUPS]
    assert pushups.current_progress == 20


@pytest.mark.asyncio
async def test_status_voice_command(service, hunter):
    result = await service.process_voice_command(hunter.id, "status")

    assert result.message == "Level 1, 0/100 XP. Current streak: 0 days."


@pytest.mark.asyncio
async def test_mission_status_voice_command_in_spanish(service, hunter, today):
    await service.start_day(hunter.id, today)

    result = await service.process_voice_command(hunter.id, "estado de misiones", today)

    assert result.message == "Misiones obligatorias: 0/4. Bonus: 0/2."


@pytest.mark.asyncio
async def test_unknown_voice_command(service, hunter):
    result = await service.process_voice_command(hunter.id, "sing me a song")

    assert result.message == "Command not recognized"
    assert result.xp_awarded == 0


# ============================================================================
# Stat Points
# ============================================================================

@pytest.mark.asyncio
async def test_allocate_without_points(service, hunter):
    with pytest.raises(InvalidInputError):
        await service.allocate_stat_point(hunter.id, "str")


@pytest.mark.asyncio
async def test_allocate_after_level_up(service, hunter):
    await service.log_workout(hunter.id, "extreme", 250)

    result = await service.allocate_stat_point(hunter.id, "agi")

    assert result.profile.agi == 2
    assert result.message == "+1 AGI. 0 points left"
