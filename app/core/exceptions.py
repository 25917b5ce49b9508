"""
Error kinds raised by ledger operations.

Every error raised by the ledger is one of the kinds below, so the
surrounding application can decide messaging (and whether to retry)
from the class alone.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input shape or range (never retried)
    ├── NotFoundError - Missing entity id (or entity of another tenant)
    ├── ConflictError - Operation conflicts with current state (re-fetch first)
    └── StorageError - Transient storage failure (safe to retry whole operation)
        ├── StorageTimeout - Lock or statement did not complete in time
        └── StorageUnavailable - Database unreachable / operational failure

Usage:
    from core.exceptions import ConflictError, ValidationError

    raise ValidationError("Amount must be positive", details={"amount": "-1.00"})

    try:
        ...
    except BaseApplicationError as e:
        if getattr(e, "is_retryable", False):
            schedule_retry()
        return e.to_dict()

Note:
    These exceptions are for domain/business logic errors. Nothing raised
    here is fatal to the process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)
        is_retryable: Whether repeating the whole operation may succeed

    Example:
        try:
            PayableLedger.apply_payment(tenant_id, payable_id, ...)
        except NotFoundError as e:
            logger.warning("Payable not found: %s", e.error_code)
            return e.to_dict()
    """

    default_error_code: str = "APPLICATION_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a plain dict for the caller.

        Returns:
            Dict with error, error_code, and (when present) details keys

        Example:
            {
                "error": "Payment 42 is already reversed",
                "error_code": "ALREADY_REVERSED",
                "details": {"payment_id": "42"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Non-positive amounts
    - Share fractions outside (0, 1]
    - Missing required text (e.g. a reversal reason)

    Not retried: the caller must fix the input.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested entity is not found.

    Lookups are tenant scoped, so an id that exists under another tenant
    is reported exactly like a missing one.

    Example:
        raise NotFoundError(
            f"Payable {payable_id} not found",
            error_code="PAYABLE_NOT_FOUND",
            details={"payable_id": str(payable_id)},
        )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current entity state.

    Use for:
    - Invalid state transitions (paying a cancelled payable)
    - Repeated one-way operations (reversing a reversed payment)
    - Optimistic locking failures

    Not retried as-is: the caller must re-fetch state first.
    """

    default_error_code: str = "CONFLICT"


class StorageError(BaseApplicationError):
    """
    Base class for transient storage failures.

    Every ledger write happens inside one atomic boundary, so no partial
    writes survive one of these and the whole operation is safe to retry.
    """

    default_error_code: str = "STORAGE_ERROR"
    is_retryable: bool = True


class StorageTimeout(StorageError):
    """
    Raised when a storage call or lock acquisition exceeds its bound.

    Example:
        raise StorageTimeout(
            "Timed out waiting for payable row lock",
            details={"payable_id": str(payable_id), "timeout": 10.0},
        )
    """

    default_error_code: str = "STORAGE_TIMEOUT"


class StorageUnavailable(StorageError):
    """Raised when the database or the lock backend rejects or drops the connection."""

    default_error_code: str = "STORAGE_UNAVAILABLE"
