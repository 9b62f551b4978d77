"""
Service Layer Package

- ProgressionService: event-source adapters over the progression engine
- ServiceContainer: lazy wiring of the engine over a store
"""

from hunter_engine.services.container import ServiceContainer, get_container, init_container
from hunter_engine.services.progression_service import ProgressionService, DRINK_MULTIPLIERS

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "ProgressionService",
    "DRINK_MULTIPLIERS",
]
