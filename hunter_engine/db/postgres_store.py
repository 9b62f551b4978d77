"""
PostgreSQL progression store

Same contract as InMemoryStore, on top of the psycopg connection pool:
- Saves are `UPDATE ... WHERE version = %s`; zero rows updated means the
  record is missing (NotFoundError) or stale (ConcurrencyConflictError)
- Idempotent inserts use ON CONFLICT DO NOTHING
- A profile save, its reward ledger row and its stat history entries
  share one transaction
- psycopg errors are wrapped with wrap_external_exception
"""

import logging
from datetime import date
from typing import Any, Optional

import psycopg
from psycopg import sql
from psycopg.errors import UniqueViolation
from psycopg.types.json import Jsonb

from hunter_engine.db.connection import Database, db
from hunter_engine.exceptions import ConcurrencyConflictError, NotFoundError, wrap_external_exception
from hunter_engine.models.achievement import Achievement
from hunter_engine.models.mission import Mission
from hunter_engine.models.profile import HunterProfile, StatHistoryEntry
from hunter_engine.models.raid import BossRaid

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS hunter_profiles (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL DEFAULT 'hunter',
    level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1),
    total_xp INTEGER NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
    current_xp INTEGER NOT NULL DEFAULT 0 CHECK (current_xp >= 0),
    xp_to_next_level INTEGER NOT NULL DEFAULT 100,
    "str" INTEGER NOT NULL DEFAULT 1,
    agi INTEGER NOT NULL DEFAULT 1,
    "int" INTEGER NOT NULL DEFAULT 1,
    vit INTEGER NOT NULL DEFAULT 1,
    cha INTEGER NOT NULL DEFAULT 1,
    available_points INTEGER NOT NULL DEFAULT 0 CHECK (available_points >= 0),
    current_streak INTEGER NOT NULL DEFAULT 0,
    max_streak INTEGER NOT NULL DEFAULT 0,
    total_workouts INTEGER NOT NULL DEFAULT 0,
    total_missions_completed INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS missions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES hunter_profiles(id),
    "date" DATE NOT NULL,
    mission_type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    exercise_type TEXT,
    target_value DOUBLE PRECISION NOT NULL CHECK (target_value > 0),
    current_progress DOUBLE PRECISION NOT NULL DEFAULT 0,
    unit TEXT NOT NULL,
    xp_reward INTEGER NOT NULL DEFAULT 0,
    penalty_xp INTEGER NOT NULL DEFAULT 0 CHECK (penalty_xp <= 0),
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    completed_at TIMESTAMPTZ,
    reward_granted BOOLEAN NOT NULL DEFAULT FALSE,
    penalty_applied BOOLEAN NOT NULL DEFAULT FALSE,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, "date", title)
);

CREATE TABLE IF NOT EXISTS boss_raids (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES hunter_profiles(id),
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    boss_type TEXT NOT NULL,
    difficulty TEXT NOT NULL DEFAULT 'E',
    target_value INTEGER NOT NULL CHECK (target_value > 0),
    current_progress INTEGER NOT NULL DEFAULT 0,
    reward_description TEXT NOT NULL DEFAULT '',
    reward_stats JSONB NOT NULL DEFAULT '{}'::jsonb,
    reward_xp INTEGER NOT NULL DEFAULT 0,
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    completed_at TIMESTAMPTZ,
    reward_granted BOOLEAN NOT NULL DEFAULT FALSE,
    progress_marker TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS hunter_achievements (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES hunter_profiles(id),
    achievement_key TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    icon TEXT NOT NULL DEFAULT '🏆',
    rarity TEXT NOT NULL DEFAULT 'common',
    unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, achievement_key)
);

CREATE TABLE IF NOT EXISTS stat_history (
    id SERIAL PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES hunter_profiles(id),
    stat_key TEXT NOT NULL,
    old_value INTEGER NOT NULL,
    new_value INTEGER NOT NULL,
    reason TEXT NOT NULL,
    recorded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS granted_rewards (
    user_id TEXT NOT NULL REFERENCES hunter_profiles(id),
    reward_key TEXT NOT NULL,
    granted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, reward_key)
);

CREATE INDEX IF NOT EXISTS idx_missions_user_date ON missions(user_id, "date");
CREATE INDEX IF NOT EXISTS idx_boss_raids_user_open ON boss_raids(user_id) WHERE NOT reward_granted;
CREATE INDEX IF NOT EXISTS idx_stat_history_user ON stat_history(user_id, recorded_at);
"""

PROFILE_COLUMNS = frozenset(HunterProfile(id="_").to_record().keys()) - {"id", "version", "created_at", "updated_at"}


class PostgresStore:
    """ProgressionStore backed by PostgreSQL"""

    def __init__(self, database: Database = db):
        self.database = database

    async def init_schema(self) -> None:
        """Create tables and indexes if they do not exist"""
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(SCHEMA_SQL)
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="init_schema")
        logger.info("Progression schema ready")

    # ==========================================
    # Profiles
    # ==========================================

    async def load_profile(self, user_id: str) -> HunterProfile:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT * FROM hunter_profiles WHERE id = %s", (user_id,))
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="load_profile", user_id=user_id)

        if not row:
            raise NotFoundError(
                f"No hunter profile for user {user_id}",
                record_type="HunterProfile",
                record_id=user_id,
                user_id=user_id,
                operation="load_profile"
            )
        return HunterProfile.model_validate(row)

    async def create_profile(self, profile: HunterProfile) -> HunterProfile:
        record = profile.to_record()
        columns = list(record.keys())
        query = sql.SQL(
            "INSERT INTO hunter_profiles ({}) VALUES ({}) ON CONFLICT (id) DO NOTHING"
        ).format(
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, [record[c] for c in columns])
                    created = cur.rowcount == 1
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="create_profile", user_id=profile.id)

        if created:
            logger.info(f"Created hunter profile for user {profile.id}")
        return await self.load_profile(profile.id)

    async def save_profile(
        self,
        user_id: str,
        fields: dict[str, Any],
        expected_version: int,
        reward_key: Optional[str] = None,
        history: Optional[list[StatHistoryEntry]] = None
    ) -> HunterProfile:
        unknown = set(fields) - PROFILE_COLUMNS
        if unknown:
            raise ValueError(f"Not writable profile columns: {sorted(unknown)}")

        assignments = [sql.SQL("{} = %s").format(sql.Identifier(c)) for c in fields]
        assignments.append(sql.SQL("version = version + 1"))
        assignments.append(sql.SQL("updated_at = NOW()"))
        query = sql.SQL(
            "UPDATE hunter_profiles SET {} WHERE id = %s AND version = %s RETURNING *"
        ).format(sql.SQL(", ").join(assignments))

        try:
            async with self.database.transaction() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, [*fields.values(), user_id, expected_version])
                    row = await cur.fetchone()
                    if row:
                        if reward_key is not None:
                            await cur.execute(
                                "INSERT INTO granted_rewards (user_id, reward_key) VALUES (%s, %s)",
                                (user_id, reward_key)
                            )
                        for entry in history or []:
                            await cur.execute(
                                """
                                INSERT INTO stat_history
                                (user_id, stat_key, old_value, new_value, reason, recorded_at)
                                VALUES (%s, %s, %s, %s, %s, %s)
                                """,
                                (
                                    entry.user_id,
                                    entry.stat_key.value,
                                    entry.old_value,
                                    entry.new_value,
                                    entry.reason,
                                    entry.recorded_at,
                                )
                            )
        except UniqueViolation as e:
            raise ConcurrencyConflictError(
                f"Reward {reward_key} already granted to user {user_id}",
                record_type="HunterProfile",
                record_id=user_id,
                expected_version=expected_version,
                user_id=user_id,
                operation="save_profile",
                cause=e
            ) from e
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_profile", user_id=user_id)

        if not row:
            await self._raise_stale("hunter_profiles", "HunterProfile", user_id, expected_version, user_id)
        return HunterProfile.model_validate(row)

    async def is_reward_granted(self, user_id: str, reward_key: str) -> bool:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT 1 FROM granted_rewards WHERE user_id = %s AND reward_key = %s",
                        (user_id, reward_key)
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="is_reward_granted", user_id=user_id)
        return row is not None

    # ==========================================
    # Missions
    # ==========================================

    async def list_missions_for_date(self, user_id: str, on_date: date) -> list[Mission]:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        'SELECT * FROM missions WHERE user_id = %s AND "date" = %s ORDER BY created_at',
                        (user_id, on_date)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_missions_for_date", user_id=user_id)
        return [Mission.model_validate(row) for row in rows]

    async def get_mission(self, mission_id: str) -> Mission:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT * FROM missions WHERE id = %s", (mission_id,))
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_mission")

        if not row:
            raise NotFoundError(
                f"Mission {mission_id} does not exist",
                record_type="Mission",
                record_id=mission_id,
                operation="get_mission"
            )
        return Mission.model_validate(row)

    async def generate_missions_if_absent(self, user_id: str, on_date: date, missions: list[Mission]) -> bool:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT pg_advisory_xact_lock(hashtext(%s))",
                        (f"missions:{user_id}:{on_date.isoformat()}",)
                    )
                    await cur.execute(
                        'SELECT 1 FROM missions WHERE user_id = %s AND "date" = %s LIMIT 1',
                        (user_id, on_date)
                    )
                    if await cur.fetchone():
                        await conn.commit()
                        return False

                    for mission in missions:
                        await cur.execute(
                            """
                            INSERT INTO missions
                            (id, user_id, "date", mission_type, title, description, exercise_type,
                             target_value, current_progress, unit, xp_reward, penalty_xp, created_at)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                            ON CONFLICT (user_id, "date", title) DO NOTHING
                            """,
                            (
                                mission.id,
                                mission.user_id,
                                mission.date,
                                mission.mission_type.value,
                                mission.title,
                                mission.description,
                                mission.exercise_type.value if mission.exercise_type else None,
                                mission.target_value,
                                mission.current_progress,
                                mission.unit,
                                mission.xp_reward,
                                mission.penalty_xp,
                                mission.created_at,
                            )
                        )
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="generate_missions_if_absent", user_id=user_id)
        return True

    async def save_mission(self, mission: Mission) -> Mission:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        UPDATE missions
                        SET current_progress = %s,
                            completed = %s,
                            completed_at = %s,
                            reward_granted = %s,
                            penalty_applied = %s,
                            version = version + 1
                        WHERE id = %s AND version = %s
                        RETURNING *
                        """,
                        (
                            mission.current_progress,
                            mission.completed,
                            mission.completed_at,
                            mission.reward_granted,
                            mission.penalty_applied,
                            mission.id,
                            mission.version,
                        )
                    )
                    row = await cur.fetchone()
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_mission", user_id=mission.user_id)

        if not row:
            await self._raise_stale("missions", "Mission", mission.id, mission.version, mission.user_id)
        return Mission.model_validate(row)

    # ==========================================
    # Boss Raids
    # ==========================================

    async def list_open_raids(self, user_id: str) -> list[BossRaid]:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT * FROM boss_raids WHERE user_id = %s AND NOT reward_granted ORDER BY created_at",
                        (user_id,)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_open_raids", user_id=user_id)
        return [BossRaid.model_validate(row) for row in rows]

    async def get_raid(self, raid_id: str) -> BossRaid:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT * FROM boss_raids WHERE id = %s", (raid_id,))
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_raid")

        if not row:
            raise NotFoundError(
                f"Boss raid {raid_id} does not exist",
                record_type="BossRaid",
                record_id=raid_id,
                operation="get_raid"
            )
        return BossRaid.model_validate(row)

    async def seed_raids_if_absent(self, user_id: str, raids: list[BossRaid]) -> bool:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"raids:{user_id}",))
                    await cur.execute(
                        "SELECT 1 FROM boss_raids WHERE user_id = %s AND NOT completed LIMIT 1",
                        (user_id,)
                    )
                    if await cur.fetchone():
                        await conn.commit()
                        return False

                    for raid in raids:
                        await cur.execute(
                            """
                            INSERT INTO boss_raids
                            (id, user_id, title, description, boss_type, difficulty, target_value,
                             current_progress, reward_description, reward_stats, reward_xp, created_at)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                            """,
                            (
                                raid.id,
                                raid.user_id,
                                raid.title,
                                raid.description,
                                raid.boss_type,
                                raid.difficulty.value,
                                raid.target_value,
                                raid.current_progress,
                                raid.reward_description,
                                Jsonb({stat.value: bonus for stat, bonus in raid.reward_stats.items()}),
                                raid.reward_xp,
                                raid.created_at,
                            )
                        )
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="seed_raids_if_absent", user_id=user_id)
        return True

    async def save_raid(self, raid: BossRaid) -> BossRaid:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        UPDATE boss_raids
                        SET current_progress = %s,
                            completed = %s,
                            completed_at = %s,
                            reward_granted = %s,
                            progress_marker = %s,
                            version = version + 1
                        WHERE id = %s AND version = %s
                        RETURNING *
                        """,
                        (
                            raid.current_progress,
                            raid.completed,
                            raid.completed_at,
                            raid.reward_granted,
                            raid.progress_marker,
                            raid.id,
                            raid.version,
                        )
                    )
                    row = await cur.fetchone()
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_raid", user_id=raid.user_id)

        if not row:
            await self._raise_stale("boss_raids", "BossRaid", raid.id, raid.version, raid.user_id)
        return BossRaid.model_validate(row)

    # ==========================================
    # Achievements
    # ==========================================

    async def get_achievement(self, user_id: str, key: str) -> Optional[Achievement]:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT * FROM hunter_achievements WHERE user_id = %s AND achievement_key = %s",
                        (user_id, key)
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_achievement", user_id=user_id)
        return Achievement.model_validate(row) if row else None

    async def insert_achievement_if_absent(self, user_id: str, key: str, record: Achievement) -> bool:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO hunter_achievements
                        (id, user_id, achievement_key, title, description, icon, rarity, unlocked_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (user_id, achievement_key) DO NOTHING
                        """,
                        (
                            record.id,
                            user_id,
                            key,
                            record.title,
                            record.description,
                            record.icon,
                            record.rarity.value,
                            record.unlocked_at,
                        )
                    )
                    created = cur.rowcount == 1
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="insert_achievement_if_absent", user_id=user_id)
        return created

    async def list_achievements(self, user_id: str) -> list[Achievement]:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT * FROM hunter_achievements WHERE user_id = %s ORDER BY unlocked_at DESC",
                        (user_id,)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_achievements", user_id=user_id)
        return [Achievement.model_validate(row) for row in rows]

    # ==========================================
    # Stat History
    # ==========================================

    async def list_stat_history(self, user_id: str) -> list[StatHistoryEntry]:
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT * FROM stat_history WHERE user_id = %s ORDER BY recorded_at, id",
                        (user_id,)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_stat_history", user_id=user_id)
        return [StatHistoryEntry.model_validate(row) for row in rows]

    async def _raise_stale(
        self,
        table: str,
        record_type: str,
        record_id: str,
        expected_version: int,
        user_id: Optional[str]
    ) -> None:
        """Turn a zero-row versioned UPDATE into NotFound or ConcurrencyConflict"""
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        sql.SQL("SELECT version FROM {} WHERE id = %s").format(sql.Identifier(table)),
                        (record_id,)
                    )
                    row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=f"save_{record_type}", user_id=user_id)

        if not row:
            raise NotFoundError(
                f"{record_type} {record_id} does not exist",
                record_type=record_type,
                record_id=record_id,
                user_id=user_id,
                operation=f"save_{record_type}"
            )
        raise ConcurrencyConflictError(
            f"{record_type} {record_id} is at version {row['version']}, expected {expected_version}",
            record_type=record_type,
            record_id=record_id,
            expected_version=expected_version,
            user_id=user_id,
            operation=f"save_{record_type}"
        )
