"""
Domain exceptions for collabxp.

Purpose
-------
Define the structured, domain-specific exception hierarchy raised by services
for business rule violations: rejected XP amounts, unknown stat counters and
other caller mistakes. Callers (HTTP handlers, event listeners) translate
these into user-facing errors.

Design Notes
------------
- All domain exceptions inherit from `CollabDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, mirroring the infrastructure hierarchy in
  `collabxp.core.exceptions` so both can be logged the same way.
- Domain exceptions are raised before any storage access; a raised domain
  exception means nothing was written.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from collabxp.core.exceptions import ErrorSeverity


class CollabDomainException(Exception):
    """
    Base exception for all collabxp domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise CollabDomainException(
        ...     "Stat update rejected",
        ...     {"stat": "tasks_completed"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ValidationError(CollabDomainException):
    """
    Raised when caller input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        error_message = f"Validation error for {field}: {message}"
        super().__init__(
            error_message,
            details={
                "field": field,
                "validation_message": message,
            },
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidAmountError(ValidationError):
    """
    Raised when an XP award amount is not a positive integer.

    Example:
        >>> raise InvalidAmountError(0)
    """

    def __init__(self, amount: Any, field: str = "amount") -> None:
        self.amount = amount
        super().__init__(field, f"must be a positive integer, got {amount!r}")
        self.details["amount"] = repr(amount)
        self.error_code = "INVALID_AMOUNT"
