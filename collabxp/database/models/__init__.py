"""
Database models package.

Importing this package registers every table on ``Base.metadata``.
"""

from collabxp.core.database.base import Base
from collabxp.database.models.progression import UserProgressionRecord

__all__ = [
    "Base",
    "UserProgressionRecord",
]
