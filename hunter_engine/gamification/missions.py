"""
Daily Missions

Each hunter gets a fixed set of missions per calendar date:
- Required: 100 push-ups, 100 sit-ups, 100 squats, 10 km run
- Bonus: 2500 ml of water, 3 healthy meals

Lifecycle per mission: pending -> completed (terminal). Progress only moves
forward and is capped at the target. The completion XP is granted exactly
once: if the grant fails the mission stays completed, and the next
advance_progress(), complete_mission() or grant_pending_reward() on it
pays the reward instead.
"""

import logging
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from hunter_engine.db.protocols import MissionRepository
from hunter_engine.exceptions import HunterEngineError, RewardPendingError
from hunter_engine.gamification.profile_store import ProfileStore
from hunter_engine.models.mission import ExerciseType, Mission, MissionTemplate, MissionType
from hunter_engine.models.results import MissionProgress, MissionSummary, XPAward
from hunter_engine.monitoring import record_mission_completed
from hunter_engine.validators import require_positive_amount

logger = logging.getLogger(__name__)

# Decimal places kept for mission progress
PROGRESS_PRECISION = 6


DAILY_MISSION_TEMPLATES: List[MissionTemplate] = [
    # ========== REQUIRED ==========
    MissionTemplate(
        mission_type=MissionType.DAILY_REQUIRED,
        title="100 Push-ups",
        description="Complete 100 push-ups today",
        exercise_type=ExerciseType.PUSHUPS,
        target_value=100,
        unit="reps",
        xp_reward=20,
        penalty_xp=-10,
    ),
    MissionTemplate(
        mission_type=MissionType.DAILY_REQUIRED,
        title="100 Sit-ups",
        description="Complete 100 sit-ups today",
        exercise_type=ExerciseType.SITUPS,
        target_value=100,
        unit="reps",
        xp_reward=20,
        penalty_xp=-10,
    ),
    MissionTemplate(
        mission_type=MissionType.DAILY_REQUIRED,
        title="100 Squats",
        description="Complete 100 squats today",
        exercise_type=ExerciseType.SQUATS,
        target_value=100,
        unit="reps",
        xp_reward=20,
        penalty_xp=-10,
    ),
    MissionTemplate(
        mission_type=MissionType.DAILY_REQUIRED,
        title="10 km Run",
        description="Run 10 kilometers today",
        exercise_type=ExerciseType.RUNNING,
        target_value=10,
        unit="km",
        xp_reward=30,
        penalty_xp=-15,
    ),

    # ========== BONUS ==========
    MissionTemplate(
        mission_type=MissionType.BONUS,
        title="Hydration",
        description="Drink 2500 ml of water",
        exercise_type=ExerciseType.WATER,
        target_value=2500,
        unit="ml",
        xp_reward=10,
    ),
    MissionTemplate(
        mission_type=MissionType.BONUS,
        title="Clean Fuel",
        description="Log 3 healthy meals",
        exercise_type=ExerciseType.NUTRITION,
        target_value=3,
        unit="meals",
        xp_reward=10,
    ),
]


class MissionTracker:
    """Per-day mission state machine"""

    def __init__(self, store: MissionRepository, profile_store: ProfileStore):
        self.store = store
        self.profile_store = profile_store

    async def generate_for_date(self, user_id: str, on_date: date) -> List[Mission]:
        """
        Create the daily set for (user, date) unless one already exists

        Returns:
            The missions for that date (new or pre-existing)
        """
        missions = [template.build(user_id, on_date) for template in DAILY_MISSION_TEMPLATES]
        created = await self.store.generate_missions_if_absent(user_id, on_date, missions)
        if created:
            logger.info(f"Generated {len(missions)} missions for user {user_id} on {on_date}")
        else:
            logger.debug(f"Missions already exist for user {user_id} on {on_date}, skipping generation")
        return await self.store.list_missions_for_date(user_id, on_date)

    async def list_for_date(self, user_id: str, on_date: date) -> List[Mission]:
        return await self.store.list_missions_for_date(user_id, on_date)

    async def advance_progress(self, mission_id: str, amount: Union[int, float]) -> MissionProgress:
        """
        Add progress to a mission

        Args:
            mission_id: Mission to advance
            amount: Strictly positive progress in the mission's unit

        Returns:
            MissionProgress; transitioned is True for the call whose XP grant
            landed. A completed mission whose grant failed earlier is paid
            here instead of being advanced.

        Raises:
            InvalidInputError: amount is not positive (nothing is read or written)
            ConcurrencyConflictError: the mission changed since it was read
            RewardPendingError: completion saved, XP grant must be retried
        """
        amount = require_positive_amount(amount)
        mission = await self.store.get_mission(mission_id)

        if mission.completed:
            if not mission.reward_granted:
                return await self._settle_reward(mission)
            logger.debug(f"Mission {mission_id} already completed, ignoring +{amount}")
            return MissionProgress(mission=mission, transitioned=False)

        # Rounded so repeated fractional steps land exactly on the target
        new_progress = min(round(mission.current_progress + amount, PROGRESS_PRECISION), mission.target_value)
        completed = new_progress >= mission.target_value

        updated = mission.model_copy(update={
            "current_progress": new_progress,
            "completed": completed,
            "completed_at": datetime.now(timezone.utc) if completed else None,
        })
        saved = await self.store.save_mission(updated)

        if not completed:
            logger.debug(
                f"Mission {mission_id} progress: {saved.current_progress}/{saved.target_value} {saved.unit}"
            )
            return MissionProgress(mission=saved, transitioned=False)

        record_mission_completed(saved.mission_type.value)
        logger.info(f"User {saved.user_id} completed mission '{saved.title}' ({saved.id})")

        return await self._settle_reward(saved)

    async def advance_for_exercise(
        self,
        user_id: str,
        exercise_type: ExerciseType,
        amount: Union[int, float],
        on_date: date
    ) -> Optional[MissionProgress]:
        """
        Advance the first open mission of this exercise type for the date

        Returns:
            MissionProgress, or None when no open mission matches
        """
        amount = require_positive_amount(amount, user_id=user_id)
        missions = await self.store.list_missions_for_date(user_id, on_date)

        for mission in missions:
            if mission.exercise_type == exercise_type and not mission.completed:
                return await self.advance_progress(mission.id, amount)

        logger.debug(f"No open {exercise_type.value} mission for user {user_id} on {on_date}")
        return None

    async def complete_mission(self, mission_id: str) -> MissionProgress:
        """Manually complete a mission by advancing it the remaining amount"""
        mission = await self.store.get_mission(mission_id)
        if mission.completed:
            if not mission.reward_granted:
                return await self._settle_reward(mission)
            logger.debug(f"Mission {mission_id} already completed")
            return MissionProgress(mission=mission, transitioned=False)
        return await self.advance_progress(mission_id, mission.remaining)

    async def grant_pending_reward(self, mission_id: str) -> MissionProgress:
        """Retry the XP grant of a completed mission whose reward never landed"""
        mission = await self.store.get_mission(mission_id)
        if not mission.completed or mission.reward_granted:
            logger.debug(f"Mission {mission_id} has no pending reward")
            return MissionProgress(mission=mission, transitioned=False)

        return await self._settle_reward(mission)

    async def summarize(self, user_id: str, on_date: date) -> MissionSummary:
        missions = await self.store.list_missions_for_date(user_id, on_date)
        required = [m for m in missions if m.is_required]
        bonus = [m for m in missions if m.mission_type == MissionType.BONUS]
        return MissionSummary(
            total_required=len(required),
            completed_required=sum(1 for m in required if m.completed),
            total_bonus=len(bonus),
            completed_bonus=sum(1 for m in bonus if m.completed),
        )

    async def apply_missed_penalties(self, user_id: str, on_date: date) -> List[MissionProgress]:
        """
        Penalize every required mission left open at the end of the day

        The penalty is keyed per mission in the reward ledger and the mission
        is flagged afterwards, so re-running this for the same date never
        penalizes twice.
        """
        missions = await self.store.list_missions_for_date(user_id, on_date)
        penalized = []

        for mission in missions:
            if not mission.is_required or mission.completed or mission.penalty_applied:
                continue

            award = None
            if mission.penalty_xp:
                award = await self.profile_store.apply_xp(
                    user_id,
                    mission.penalty_xp,
                    reason="missed_mission",
                    reward_key=f"penalty:{mission.id}"
                )
            saved = await self.store.save_mission(mission.model_copy(update={"penalty_applied": True}))

            logger.info(f"User {user_id} missed mission '{saved.title}' on {on_date} ({saved.penalty_xp} XP)")
            penalized.append(MissionProgress(mission=saved, transitioned=False, xp_award=award))

        return penalized

    async def _settle_reward(self, mission: Mission) -> MissionProgress:
        saved, award = await self._grant_reward(mission)
        return MissionProgress(mission=saved, transitioned=not award.already_granted, xp_award=award)

    async def _grant_reward(self, mission: Mission) -> tuple[Mission, XPAward]:
        try:
            award = await self.profile_store.apply_xp(
                mission.user_id,
                mission.xp_reward,
                reason="mission",
                missions_completed=1,
                reward_key=f"mission:{mission.id}"
            )
        except HunterEngineError as e:
            if not e.retryable:
                raise
            raise RewardPendingError(
                f"Mission {mission.id} completed but its XP grant failed",
                record_type="Mission",
                record_id=mission.id,
                user_id=mission.user_id,
                operation="grant_mission_reward",
                cause=e
            ) from e

        saved = await self.store.save_mission(mission.model_copy(update={"reward_granted": True}))
        return saved, award
