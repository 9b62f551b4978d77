"""
ProgressionService - Event Source Adapters

Translates user actions (workouts, meals, drinks, exercise counts, manual
mission completion, voice/chat commands) into calls on the progression
engine, and runs the follow-ups derived from the resulting state:
- daily bonus, streak and all_required_completed raids once every
  required mission of a day is complete
- level and workout milestones and level_check raids, re-checked from
  the current profile at the end of every call

Every follow-up is idempotent and runs from state rather than from the
call that caused it, so re-driving a failed call finishes whatever the
failed attempt left undone.

Errors propagate to the caller unchanged; retryable ones can be re-driven
with hunter_engine.resilience.retry_with_backoff.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from hunter_engine import config
from hunter_engine.db.protocols import ProgressionStore
from hunter_engine.exceptions import InvalidInputError, NotFoundError
from hunter_engine.gamification.achievement_system import AchievementUnlocker
from hunter_engine.gamification.boss_raids import BossRaidTracker
from hunter_engine.gamification.missions import MissionTracker
from hunter_engine.gamification.profile_store import ProfileStore
from hunter_engine.gamification.xp_system import xp_for_meal, xp_for_workout
from hunter_engine.models.achievement import Achievement
from hunter_engine.models.events import CommandIntent, EventKind, GameEvent
from hunter_engine.models.mission import ExerciseType, Mission
from hunter_engine.models.profile import HunterProfile, StatKey
from hunter_engine.models.raid import BossRaid, RaidTrigger
from hunter_engine.models.results import MissionProgress, ProgressionResult, RaidProgress, XPAward
from hunter_engine.monitoring import track_operation
from hunter_engine.utils.command_parser import detect_language, parse_command
from hunter_engine.validators import require_positive_amount

logger = logging.getLogger(__name__)


# Share of a drink that counts toward the water mission
DRINK_MULTIPLIERS = {
    "water": 1.0,
    "tea": 0.8,
    "coffee": 0.6,
    "sports_drink": 0.7,
}


def _today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class _Tally:
    """Everything one engine call produced, in order"""
    xp_awarded: int = 0
    levels_gained: int = 0
    missions: List[Mission] = field(default_factory=list)
    raids: List[BossRaid] = field(default_factory=list)
    achievements: List[Achievement] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def add_award(self, award: Optional[XPAward]) -> None:
        if award is None:
            return
        self.xp_awarded += award.xp_awarded
        self.levels_gained += award.levels_gained


class ProgressionService:
    """
    Service for hunter progression.

    Responsibilities:
    - Hunter registration and day start/close
    - Translating event sources into mission/raid progress
    - Reconciling follow-ups (milestones, raids, daily bonus)
    - Building the result the UI shows
    """

    def __init__(
        self,
        store: ProgressionStore,
        profile_store: Optional[ProfileStore] = None,
        missions: Optional[MissionTracker] = None,
        raids: Optional[BossRaidTracker] = None,
        achievements: Optional[AchievementUnlocker] = None
    ):
        self.store = store
        self.profile_store = profile_store or ProfileStore(store)
        self.achievements = achievements or AchievementUnlocker(store)
        self.missions = missions or MissionTracker(store, self.profile_store)
        self.raids = raids or BossRaidTracker(store, self.profile_store, self.achievements)
        logger.debug("ProgressionService initialized")

    # ==========================================
    # Lifecycle
    # ==========================================

    async def register_hunter(self, user_id: str, username: str = "hunter") -> ProgressionResult:
        """Create the signup profile and seed the starter raids (idempotent)"""
        with track_operation("register_hunter"):
            profile = await self.profile_store.create_profile(user_id, username)
            await self.raids.seed_initial(user_id)
            return self._result(profile, _Tally(), f"Welcome, {profile.username}. Your journey begins.")

    async def start_day(self, user_id: str, on_date: Optional[date] = None) -> ProgressionResult:
        """Generate the day's missions and seed raids if none are open"""
        on_date = on_date or _today()
        with track_operation("start_day"):
            profile = await self.profile_store.get_profile(user_id)
            missions = await self.missions.generate_for_date(user_id, on_date)
            await self.raids.seed_initial(user_id)
            return self._result(profile, _Tally(), f"{len(missions)} missions available for {on_date.isoformat()}")

    async def close_day(self, user_id: str, on_date: date) -> ProgressionResult:
        """
        Settle a finished day

        Penalizes open required missions and resets the streak unless every
        required mission was completed, in which case any day bonus a failed
        call left unpaid is granted. Safe to run more than once.
        """
        with track_operation("close_day"):
            tally = _Tally()
            for progress in await self.missions.apply_missed_penalties(user_id, on_date):
                tally.add_award(progress.xp_award)
                tally.notes.append(f"Mission failed: {progress.mission.title} ({progress.mission.penalty_xp} XP)")

            summary = await self.missions.summarize(user_id, on_date)
            if summary.all_required_completed:
                await self._complete_day(user_id, on_date, tally)
            else:
                await self.profile_store.update_streak(user_id, increment=False)
                tally.notes.append("Streak reset")

            return await self._finish(user_id, tally)

    # ==========================================
    # Event sources
    # ==========================================

    async def log_workout(
        self,
        user_id: str,
        intensity: str,
        duration_minutes: Union[int, float]
    ) -> ProgressionResult:
        """
        Log a workout session

        Grants intensity/duration XP, bumps the workout count and advances
        workout_count raids. Not idempotent: each call counts a workout.
        """
        duration = require_positive_amount(duration_minutes, field="duration_minutes", user_id=user_id)
        with track_operation("log_workout"):
            tally = _Tally()
            xp = xp_for_workout(intensity, int(duration))

            award, _, _ = await self.profile_store.record_workout(user_id, xp)
            tally.add_award(award)
            tally.notes.append(f"Workout logged ({intensity}, {int(duration)} min)")

            raid_progress = await self.raids.evaluate(user_id, RaidTrigger.WORKOUT, level=award.new_level)
            self._absorb_raids(raid_progress, tally)

            return await self._finish(user_id, tally)

    async def log_nutrition(
        self,
        user_id: str,
        is_healthy: bool,
        on_date: Optional[date] = None
    ) -> ProgressionResult:
        """Healthy meals earn XP and count toward the nutrition mission; unhealthy ones cost XP"""
        on_date = on_date or _today()
        with track_operation("log_nutrition"):
            tally = _Tally()
            award = await self.profile_store.apply_xp(user_id, xp_for_meal(is_healthy), reason="nutrition")
            tally.add_award(award)
            tally.notes.append("Healthy meal logged" if is_healthy else "Unhealthy meal logged")

            if is_healthy:
                progress = await self.missions.advance_for_exercise(user_id, ExerciseType.NUTRITION, 1, on_date)
                await self._absorb_mission(user_id, progress, on_date, tally)

            return await self._finish(user_id, tally)

    async def log_hydration(
        self,
        user_id: str,
        amount_ml: Union[int, float],
        drink_type: str = "water",
        on_date: Optional[date] = None
    ) -> ProgressionResult:
        """Advance the water mission by the drink's effective amount"""
        amount = require_positive_amount(amount_ml, field="amount_ml", user_id=user_id)
        multiplier = DRINK_MULTIPLIERS.get(drink_type)
        if multiplier is None:
            raise InvalidInputError(
                f"Unknown drink type '{drink_type}'. Valid types: {', '.join(DRINK_MULTIPLIERS)}",
                field="drink_type",
                value=drink_type,
                user_id=user_id
            )
        on_date = on_date or _today()

        with track_operation("log_hydration"):
            tally = _Tally()
            effective = round(amount * multiplier)
            tally.notes.append(f"Hydration logged: {effective} ml effective")

            if effective > 0:
                progress = await self.missions.advance_for_exercise(user_id, ExerciseType.WATER, effective, on_date)
                await self._absorb_mission(user_id, progress, on_date, tally)

            return await self._finish(user_id, tally)

    async def log_exercise(
        self,
        user_id: str,
        exercise_type: Union[str, ExerciseType],
        amount: Union[int, float],
        on_date: Optional[date] = None
    ) -> ProgressionResult:
        """Advance the matching mission by a rep count or distance"""
        exercise = self._parse_exercise(exercise_type, user_id)
        amount = require_positive_amount(amount, user_id=user_id)
        on_date = on_date or _today()

        with track_operation("log_exercise"):
            tally = _Tally()
            progress = await self.missions.advance_for_exercise(user_id, exercise, amount, on_date)
            if progress is None:
                tally.notes.append(f"No open {exercise.value} mission today")
                await self._settle_day(user_id, on_date, tally)
            else:
                tally.notes.append(
                    f"{progress.mission.title}: {progress.mission.current_progress:g}/"
                    f"{progress.mission.target_value:g} {progress.mission.unit}"
                )
            await self._absorb_mission(user_id, progress, on_date, tally)
            return await self._finish(user_id, tally)

    async def complete_mission(self, user_id: str, mission_id: str) -> ProgressionResult:
        """Manually complete one of the user's missions"""
        with track_operation("complete_mission"):
            mission = await self.missions.store.get_mission(mission_id)
            if mission.user_id != user_id:
                raise NotFoundError(
                    f"Mission {mission_id} does not belong to user {user_id}",
                    record_type="Mission",
                    record_id=mission_id,
                    user_id=user_id,
                    operation="complete_mission"
                )

            tally = _Tally()
            progress = await self.missions.complete_mission(mission_id)
            await self._absorb_mission(user_id, progress, mission.date, tally)
            return await self._finish(user_id, tally)

    async def allocate_stat_point(self, user_id: str, stat_key: Union[str, StatKey]) -> ProgressionResult:
        with track_operation("allocate_stat_point"):
            profile = await self.profile_store.allocate_stat_point(user_id, stat_key)
            label = str(getattr(stat_key, "value", stat_key)).upper()
            return self._result(profile, _Tally(), f"+1 {label}. {profile.available_points} points left")

    async def process_event(
        self,
        user_id: str,
        event: GameEvent,
        on_date: Optional[date] = None
    ) -> ProgressionResult:
        """
        Dispatch a GameEvent to the matching event source

        Metadata used per kind:
            workout: intensity (default medium); amount is the duration in minutes
            nutrition: is_healthy (default True)
            hydration: drink_type (default water); amount in ml
            mission_manual: mission_id
            voice: exercise_type on the event; amount in the mission's unit
        """
        on_date = on_date or event.timestamp.date()
        logger.debug(f"Processing {event.kind.value} event {event.request_id} for user {user_id}")

        if event.kind == EventKind.WORKOUT:
            return await self.log_workout(
                user_id, event.metadata.get("intensity", "medium"), event.amount
            )
        if event.kind == EventKind.NUTRITION:
            return await self.log_nutrition(user_id, bool(event.metadata.get("is_healthy", True)), on_date)
        if event.kind == EventKind.HYDRATION:
            return await self.log_hydration(
                user_id, event.amount, event.metadata.get("drink_type", "water"), on_date
            )
        if event.kind == EventKind.MISSION_MANUAL:
            mission_id = event.metadata.get("mission_id")
            if not mission_id:
                raise InvalidInputError(
                    "mission_manual events need a mission_id",
                    field="mission_id",
                    value=None,
                    user_id=user_id
                )
            return await self.complete_mission(user_id, mission_id)
        if event.kind == EventKind.VOICE:
            if event.exercise_type is None:
                raise InvalidInputError(
                    "voice events need an exercise_type",
                    field="exercise_type",
                    value=None,
                    user_id=user_id
                )
            return await self.log_exercise(user_id, event.exercise_type, event.amount, on_date)

        raise InvalidInputError(f"Unsupported event kind {event.kind}", field="kind", value=event.kind)

    async def process_voice_command(
        self,
        user_id: str,
        transcript: str,
        on_date: Optional[date] = None
    ) -> ProgressionResult:
        """Parse a voice/chat transcript and run the resulting command"""
        command = parse_command(transcript)
        lang = detect_language(transcript.lower())
        on_date = on_date or _today()
        logger.info(f"Voice command from user {user_id}: intent={command.intent.value}")

        if command.event is not None:
            result = await self.process_event(user_id, command.event, on_date)
            result.message = "\n".join(part for part in (command.response, result.message) if part)
            return result

        profile = await self.profile_store.get_profile(user_id)

        if command.intent == CommandIntent.STATUS_CHECK:
            if lang == "es":
                message = (
                    f"Nivel {profile.level}, {profile.current_xp}/{profile.xp_to_next_level} XP. "
                    f"Racha actual: {profile.current_streak} días."
                )
            else:
                message = (
                    f"Level {profile.level}, {profile.current_xp}/{profile.xp_to_next_level} XP. "
                    f"Current streak: {profile.current_streak} days."
                )
            return self._result(profile, _Tally(), message)

        if command.intent == CommandIntent.MISSION_STATUS:
            summary = await self.missions.summarize(user_id, on_date)
            if lang == "es":
                message = (
                    f"Misiones obligatorias: {summary.completed_required}/{summary.total_required}. "
                    f"Bonus: {summary.completed_bonus}/{summary.total_bonus}."
                )
            else:
                message = (
                    f"Required missions: {summary.completed_required}/{summary.total_required}. "
                    f"Bonus: {summary.completed_bonus}/{summary.total_bonus}."
                )
            return self._result(profile, _Tally(), message)

        return self._result(profile, _Tally(), command.response)

    # ==========================================
    # Follow-ups
    # ==========================================

    @staticmethod
    def _absorb_raids(progresses: List[RaidProgress], tally: _Tally) -> None:
        for progress in progresses:
            if not progress.transitioned:
                continue
            tally.raids.append(progress.raid)
            if progress.achievement:
                tally.achievements.append(progress.achievement)
            tally.add_award(progress.xp_award)

    async def _absorb_mission(
        self,
        user_id: str,
        progress: Optional[MissionProgress],
        on_date: date,
        tally: _Tally
    ) -> None:
        if progress is None:
            return

        if progress.transitioned:
            tally.missions.append(progress.mission)
            tally.add_award(progress.xp_award)

        if progress.mission.is_required and progress.mission.completed:
            await self._settle_day(user_id, on_date, tally)

    async def _settle_day(self, user_id: str, on_date: date, tally: _Tally) -> None:
        summary = await self.missions.summarize(user_id, on_date)
        if summary.all_required_completed:
            await self._complete_day(user_id, on_date, tally)

    async def _complete_day(self, user_id: str, on_date: date, tally: _Tally) -> None:
        """Daily bonus, streak and daily_streak raids; each lands once per date"""
        award = await self.profile_store.complete_day(user_id, on_date, config.DAILY_BONUS_XP)
        if not award.already_granted:
            tally.add_award(award)
            tally.notes.append(f"All required missions complete! +{award.xp_awarded} XP bonus")
            tally.notes.append(f"Streak: {award.profile.current_streak} days")

        raid_progress = await self.raids.evaluate(
            user_id,
            RaidTrigger.ALL_REQUIRED_COMPLETED,
            level=award.profile.level,
            marker=f"day:{on_date.isoformat()}"
        )
        self._absorb_raids(raid_progress, tally)

    async def _reconcile(self, user_id: str, tally: _Tally) -> HunterProfile:
        """
        Unlock milestones and run level_check raids for the current profile

        Raid rewards can level the hunter up again, so this repeats until
        no raid completes. Completion is one-way, which bounds the loop.
        """
        while True:
            profile = await self.profile_store.get_profile(user_id)
            tally.achievements.extend(
                await self.achievements.check_level_milestones(user_id, 0, profile.level)
            )
            tally.achievements.extend(
                await self.achievements.check_workout_milestones(user_id, 0, profile.total_workouts)
            )

            raid_progress = await self.raids.evaluate(user_id, RaidTrigger.LEVEL_CHECK, level=profile.level)
            if not any(p.transitioned for p in raid_progress):
                return profile
            self._absorb_raids(raid_progress, tally)

    # ==========================================
    # Results
    # ==========================================

    async def _finish(self, user_id: str, tally: _Tally) -> ProgressionResult:
        profile = await self._reconcile(user_id, tally)
        return self._result(profile, tally, self._build_message(profile.level, tally))

    def _result(self, profile: HunterProfile, tally: _Tally, message: str) -> ProgressionResult:
        return ProgressionResult(
            profile=profile,
            xp_awarded=tally.xp_awarded,
            leveled_up=tally.levels_gained > 0,
            new_level=profile.level,
            levels_gained=tally.levels_gained,
            missions_completed=tally.missions,
            raids_completed=tally.raids,
            achievements_unlocked=tally.achievements,
            message=message,
        )

    @staticmethod
    def _build_message(level: int, tally: _Tally) -> str:
        message_parts = list(tally.notes)

        if tally.xp_awarded:
            message_parts.append(f"{tally.xp_awarded:+d} XP")
        for mission in tally.missions:
            message_parts.append(f"✅ Mission complete: {mission.title}")
        for raid in tally.raids:
            message_parts.append(f"⚔️ Boss defeated: {raid.title}")
        if tally.levels_gained:
            message_parts.append(f"🎉 LEVEL UP! You are now level {level}")
        for achievement in tally.achievements:
            message_parts.append(f"{achievement.icon} Achievement unlocked: {achievement.title}")

        return "\n".join(message_parts)

    @staticmethod
    def _parse_exercise(value: Union[str, ExerciseType], user_id: str) -> ExerciseType:
        if isinstance(value, ExerciseType):
            return value
        try:
            return ExerciseType(str(value).lower())
        except ValueError:
            raise InvalidInputError(
                f"Unknown exercise '{value}'",
                field="exercise_type",
                value=value,
                user_id=user_id
            )
