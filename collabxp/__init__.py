"""
collabxp: progression engine for a student team-collaboration marketplace.

XP, derived levels, login streaks, achievements and lifetime stats for
marketplace users. See `collabxp.modules.progression` for the public API.
"""

__version__ = "0.1.0"
