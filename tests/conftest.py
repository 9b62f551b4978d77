"""Global test fixtures and utilities for hunter_engine tests"""
import pytest
import pytest_asyncio
from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from hunter_engine.db.memory_store import InMemoryStore
from hunter_engine.gamification.achievement_system import AchievementUnlocker
from hunter_engine.gamification.boss_raids import BossRaidTracker
from hunter_engine.gamification.missions import MissionTracker
from hunter_engine.gamification.profile_store import ProfileStore
from hunter_engine.models.profile import HunterProfile
from hunter_engine.services.progression_service import ProgressionService


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Fresh in-memory store per test"""
    return InMemoryStore()


@pytest.fixture
def profile_store(store):
    return ProfileStore(store)


@pytest.fixture
def unlocker(store):
    return AchievementUnlocker(store)


@pytest.fixture
def mission_tracker(store, profile_store):
    return MissionTracker(store, profile_store)


@pytest.fixture
def raid_tracker(store, profile_store, unlocker):
    return BossRaidTracker(store, profile_store, unlocker)


@pytest.fixture
def service(store, profile_store, mission_tracker, raid_tracker, unlocker):
    return ProgressionService(
        store,
        profile_store=profile_store,
        missions=mission_tracker,
        raids=raid_tracker,
        achievements=unlocker,
    )


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "hunter-123"


@pytest.fixture
def today():
    """Fixed mission date"""
    return date(2024, 6, 1)


@pytest_asyncio.fixture
async def hunter(store, test_user_id):
    """Freshly registered level 1 profile"""
    return await store.create_profile(HunterProfile(id=test_user_id, username="Jinwoo"))


@pytest.fixture
def set_profile_fields(store):
    """Write profile fields directly, bypassing the engine"""
    async def _set(user_id: str, **fields) -> HunterProfile:
        profile = await store.load_profile(user_id)
        return await store.save_profile(user_id, fields, expected_version=profile.version)
    return _set


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock psycopg cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock connection whose cursor() is an async context manager"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    conn.cursor.return_value.__aexit__.return_value = False
    conn.commit = AsyncMock()
    conn.rollback = AsyncMock()
    return conn


@pytest.fixture
def mock_database(mock_db_connection):
    """Stand-in for hunter_engine.db.connection.Database"""
    database = MagicMock()

    @asynccontextmanager
    async def _connection():
        yield mock_db_connection

    @asynccontextmanager
    async def _transaction():
        yield mock_db_connection

    database.connection = _connection
    database.transaction = _transaction
    return database


# ============================================================================
# Failure Injection
# ============================================================================

@pytest.fixture
def fail_on_call():
    """Wrap an async callable so that its n-th call raises error instead"""
    def _wrap(func, n, error):
        calls = 0

        async def _wrapped(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == n:
                raise error
            return await func(*args, **kwargs)

        return _wrapped
    return _wrap
