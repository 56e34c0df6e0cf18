"""
User progression model.

Schema-only representation of one user's progression record:
- XP and the derived level (stored for querying, recomputed on load)
- unlocked achievement ids and UI badges
- login streak and last login instant
- lifetime activity counters and the most recent XP gain

All behavior and game rules live in the domain and service layers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from collabxp.core.database.base import Base, IdMixin, TimestampMixin

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserProgressionRecord(Base, IdMixin, TimestampMixin):
    """One row per user id; created on first reference, never deleted by the engine."""

    __tablename__ = "user_progression"
    __table_args__ = (
        Index("ix_user_progression_user_id", "user_id", unique=True),
        Index("ix_user_progression_level", "level"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Marketplace user id",
    )

    # ========================================================================
    # LEVEL & EXPERIENCE
    # ========================================================================

    xp: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Cumulative experience points",
    )

    level: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        doc="Level derived from xp at the last write",
    )

    last_xp_gain: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        doc="{amount, reason, timestamp} of the most recent award",
    )

    # ========================================================================
    # ACHIEVEMENTS & BADGES
    # ========================================================================

    achievements: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Unlocked achievement ids in unlock order",
    )

    badges: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Badge ids displayed by clients",
    )

    # ========================================================================
    # STREAK
    # ========================================================================

    streak: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
        doc="Consecutive calendar days with a login",
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Instant of the last streak-affecting login (UTC)",
    )

    # ========================================================================
    # STATS
    # ========================================================================

    stats: Mapped[Dict[str, int]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc="Lifetime activity counters keyed by stat name",
    )
