"""
Base domain model classes for collabxp.

Purpose
-------
Provide foundational abstractions for rich domain models that encapsulate
business rules and state transitions.

Responsibilities
----------------
- Base Entity class with identity and equality semantics
- Base AggregateRoot class for consistency boundaries
- Domain events collected on the aggregate and published by services
  after the state they describe has been persisted
- Small validation helpers raising DomainValidationError

Non-Responsibilities
--------------------
- Persistence (handled by stores and repositories)
- Database schema (handled by SQLAlchemy models)
- Service orchestration (handled by the service layer)

Usage Example
-------------
>>> class Member(AggregateRoot):
...     def __init__(self, user_id: str, xp: int):
...         super().__init__(user_id)
...         self.xp = xp
...
...     def gain(self, amount: int) -> None:
...         validate_positive(amount, "amount")
...         self.xp += amount
...         self.add_domain_event("member.xp_gained", {
...             "user_id": self.id,
...             "amount": amount,
...         })
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A state change that other parts of the system may react to.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "progression.leveled_up")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Two entities with the same id are the same entity, even if their
    attributes differ.
    """

    def __init__(self, entity_id: str) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Record a domain event to be published once the change is persisted.

        >>> self.add_domain_event("progression.leveled_up", {
        ...     "user_id": self.id,
        ...     "old_level": 2,
        ...     "new_level": 3,
        ... })
        """
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """Clear and return all pending domain events."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Entry point and consistency boundary for a cluster of domain objects.

    All changes to the aggregate go through its methods so its invariants
    hold after every call; external code references aggregates by id only.
    """


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(Exception):
    """Raised when a domain model invariant would be violated."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_positive(value: int, field_name: str) -> None:
    """
    Raises
    ------
    DomainValidationError
        If value is not a positive integer
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value!r}",
            field=field_name,
        )


def validate_non_negative(value: int, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value!r}",
            field=field_name,
        )
