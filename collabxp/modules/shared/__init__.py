"""
Shared building blocks for collabxp modules: service and repository bases
and the domain exception hierarchy.
"""

from collabxp.modules.shared.base_repository import BaseRepository
from collabxp.modules.shared.base_service import BaseService
from collabxp.modules.shared.exceptions import (
    CollabDomainException,
    InvalidAmountError,
    ValidationError,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "CollabDomainException",
    "InvalidAmountError",
    "ValidationError",
]
