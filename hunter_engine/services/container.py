"""
Service Container - Dependency Injection Container

Builds the progression engine over one store. Components are lazy-loaded
on first access and share the same ProfileStore and AchievementUnlocker.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for the engine.

    The store (InMemoryStore or PostgresStore) is injected; everything
    else is built lazily via properties.
    """

    # Infrastructure dependencies (injected)
    store: object  # ProgressionStore implementation

    # Components (lazy-loaded via properties)
    _profile_store: Optional[object] = field(default=None, init=False, repr=False)
    _achievements: Optional[object] = field(default=None, init=False, repr=False)
    _missions: Optional[object] = field(default=None, init=False, repr=False)
    _raids: Optional[object] = field(default=None, init=False, repr=False)
    _progression_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def profile_store(self):
        """Get ProfileStore instance (lazy-loaded)"""
        if self._profile_store is None:
            from hunter_engine.gamification.profile_store import ProfileStore
            self._profile_store = ProfileStore(self.store)
            logger.debug("ProfileStore instantiated")
        return self._profile_store

    @property
    def achievements(self):
        """Get AchievementUnlocker instance (lazy-loaded)"""
        if self._achievements is None:
            from hunter_engine.gamification.achievement_system import AchievementUnlocker
            self._achievements = AchievementUnlocker(self.store)
            logger.debug("AchievementUnlocker instantiated")
        return self._achievements

    @property
    def missions(self):
        """Get MissionTracker instance (lazy-loaded)"""
        if self._missions is None:
            from hunter_engine.gamification.missions import MissionTracker
            self._missions = MissionTracker(self.store, self.profile_store)
            logger.debug("MissionTracker instantiated")
        return self._missions

    @property
    def raids(self):
        """Get BossRaidTracker instance (lazy-loaded)"""
        if self._raids is None:
            from hunter_engine.gamification.boss_raids import BossRaidTracker
            self._raids = BossRaidTracker(self.store, self.profile_store, self.achievements)
            logger.debug("BossRaidTracker instantiated")
        return self._raids

    @property
    def progression_service(self):
        """Get ProgressionService instance (lazy-loaded)"""
        if self._progression_service is None:
            from hunter_engine.services.progression_service import ProgressionService
            self._progression_service = ProgressionService(
                self.store,
                profile_store=self.profile_store,
                missions=self.missions,
                raids=self.raids,
                achievements=self.achievements
            )
            logger.debug("ProgressionService instantiated")
        return self._progression_service


# Global container instance (initialized in main.py)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() before using the engine."
        )
    return _container


def init_container(store: object) -> ServiceContainer:
    """
    Initialize the global service container.

    Args:
        store: ProgressionStore implementation

    Returns:
        ServiceContainer: The initialized container
    """
    global _container

    _container = ServiceContainer(store=store)

    logger.info(f"Service container initialized ({type(store).__name__})")
    return _container
