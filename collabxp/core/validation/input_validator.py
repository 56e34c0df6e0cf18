"""
Input validation layer for collabxp.

Purpose
-------
Provide a centralized validation layer for values handed to the progression
engine by its callers: XP amounts, user ids, stat names and counter
increments. Validation happens before any storage access so a rejected call
never writes.

Responsibilities
----------------
- Enforce strict integer typing for XP amounts and counter increments
  (``bool`` and ``float`` are rejected, strings are not coerced)
- Normalize user ids to non-empty strings
- Raise domain ValidationError subclasses with readable messages

Non-Responsibilities
--------------------
- Business rules such as achievement predicates (service layer concern)
- Persistence and locking (infrastructure concern)

Observability
-------------
Every validation failure is logged at debug level with ``field_name``,
``raw_value`` (repr) and ``reason``.
"""

from __future__ import annotations

from typing import Any, NoReturn, Type

from collabxp.core.logging.logger import get_logger
from collabxp.modules.shared.exceptions import InvalidAmountError, ValidationError

logger = get_logger(__name__)


def _log_failure(field_name: str, value: Any, message: str) -> None:
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError for ``field_name``."""
    _log_failure(field_name, value, message)
    raise ValidationError(field_name, message)


def _is_strict_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class InputValidator:
    """
    Centralized validation for engine inputs.

    All validation methods are stateless, return the validated value on
    success and raise on failure.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        error_cls: Type[ValidationError] = ValidationError,
    ) -> int:
        """
        Validate that ``value`` is an ``int`` strictly greater than zero.

        Raises:
            ValidationError (or ``error_cls``): If validation fails
        """
        if not _is_strict_int(value) or value <= 0:
            message = f"Must be a positive whole number, got {value!r}"
            _log_failure(field_name, value, message)
            if error_cls is InvalidAmountError:
                raise InvalidAmountError(value, field=field_name)
            raise error_cls(field_name, message)
        return value

    @staticmethod
    def validate_xp_amount(value: Any) -> int:
        """Validate an XP award amount, raising InvalidAmountError."""
        return InputValidator.validate_positive_integer(
            value, "amount", error_cls=InvalidAmountError
        )

    # =========================================================================
    # IDENTIFIERS
    # =========================================================================

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> str:
        """
        Normalize a user id to a non-empty string.

        Integers are accepted and stringified; booleans and blank strings are
        rejected.
        """
        if value is None or isinstance(value, bool):
            _raise_validation_error(field_name, value, "User id is required")

        if _is_strict_int(value):
            return str(value)

        if not isinstance(value, str) or not value.strip():
            _raise_validation_error(
                field_name, value, "User id must be a non-empty string"
            )

        return value.strip()
