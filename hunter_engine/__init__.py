"""
Hunter progression engine

XP and leveling, daily missions, boss raids and achievements for a
gamified fitness tracker.
"""

__version__ = "0.1.0"
