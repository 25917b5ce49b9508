"""
Billing-specific exceptions for ledger operations.

Every ledger error is a subclass of one of the core kinds, so callers can
branch on the kind (validation, conflict, not found, storage) and still
see a precise error_code.

Exception Hierarchy:
    ValidationError (core)
    ├── InvalidAmount - Non-positive or unparseable amount
    ├── InvalidShareFraction - Share outside (0, 1] or malformed share
    ├── ReversalReasonRequired - Blank reversal reason
    └── DirectionMismatch - Credit matched to a payable / debit to an invoice

    ConflictError (core)
    ├── AlreadyReversed - Payment or receipt already reversed
    ├── PayableClosed - Payment applied to a cancelled payable
    ├── AllocationOverflow - Shares exceed the invoice net value
    ├── AllocationLocked - Re-allocation while payments exist
    ├── InvoiceAlreadyCancelled - Operation on a cancelled invoice
    ├── TransactionAlreadyProcessed - Bank transaction not pending
    ├── InvalidStateTransitionError - FSM transition not allowed
    └── StaleRecordError - Optimistic locking conflict

    NotFoundError (core)
    ├── InvoiceNotFound
    ├── PayableNotFound
    ├── PaymentNotFound
    ├── ReceiptNotFound
    └── TransactionNotFound

    StorageTimeout (core, retryable)
    └── LockAcquisitionError - Distributed lock timeout

Usage:
    from billing.exceptions import AlreadyReversed, ReversalReasonRequired

    if not reason.strip():
        raise ReversalReasonRequired(
            "A reason is required to reverse a payment",
            details={"payment_id": str(payment_id)},
        )
"""

from __future__ import annotations

from core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageTimeout,
    ValidationError,
)


# =============================================================================
# Validation Errors
# =============================================================================


class InvalidAmount(ValidationError):
    """
    Raised when a monetary amount is not strictly positive.

    Example:
        if amount <= 0:
            raise InvalidAmount(
                "Payment amount must be positive",
                details={"amount": str(amount)},
            )
    """

    default_error_code: str = "INVALID_AMOUNT"


class InvalidShareFraction(ValidationError):
    """
    Raised when an allocation share is malformed.

    Use for:
    - Fraction ≤ 0 or > 1 (percentage outside (0, 100])
    - Both or neither of percentage / fixed_amount given
    - Admin fee percentage outside [0, 100]
    """

    default_error_code: str = "INVALID_SHARE_FRACTION"


class ReversalReasonRequired(ValidationError):
    """Raised when a reversal is requested with an empty reason."""

    default_error_code: str = "REVERSAL_REASON_REQUIRED"


class DirectionMismatch(ValidationError):
    """
    Raised when a bank transaction is confirmed against the wrong side.

    Debits settle payables; credits settle invoice allocations.
    """

    default_error_code: str = "DIRECTION_MISMATCH"


# =============================================================================
# Conflict Errors
# =============================================================================


class AlreadyReversed(ConflictError):
    """
    Raised when reversing a payment or receipt that is already reversed.

    Reversal is one-way; there is no un-reversal.
    """

    default_error_code: str = "ALREADY_REVERSED"


class PayableClosed(ConflictError):
    """Raised when a payment is applied to a cancelled payable."""

    default_error_code: str = "PAYABLE_CLOSED"


class AllocationOverflow(ConflictError):
    """
    Raised when requested shares exceed the invoice net value.

    Attributes:
        details: Contains net_value, already_allocated and requested
    """

    default_error_code: str = "ALLOCATION_OVERFLOW"


class AllocationLocked(ConflictError):
    """Raised when replacing allocations whose payables already have payments."""

    default_error_code: str = "ALLOCATION_LOCKED"


class InvoiceAlreadyCancelled(ConflictError):
    """Raised when allocating or receiving against a cancelled invoice."""

    default_error_code: str = "INVOICE_ALREADY_CANCELLED"


class TransactionAlreadyProcessed(ConflictError):
    """Raised when confirming or ignoring a bank transaction that is not pending."""

    default_error_code: str = "TRANSACTION_ALREADY_PROCESSED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed in the standard error format.

    Example:
        try:
            payable.cancel()
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(
                f"Cannot cancel payable from '{payable.status}'",
                details={"current_state": payable.status, "transition": "cancel"},
            ) from exc
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


# =============================================================================
# Not Found Errors
# =============================================================================


class InvoiceNotFound(NotFoundError):
    default_error_code: str = "INVOICE_NOT_FOUND"


class PayableNotFound(NotFoundError):
    default_error_code: str = "PAYABLE_NOT_FOUND"


class PaymentNotFound(NotFoundError):
    default_error_code: str = "PAYMENT_NOT_FOUND"


class ReceiptNotFound(NotFoundError):
    default_error_code: str = "RECEIPT_NOT_FOUND"


class TransactionNotFound(NotFoundError):
    default_error_code: str = "TRANSACTION_NOT_FOUND"


# =============================================================================
# Storage Errors
# =============================================================================


class LockAcquisitionError(StorageTimeout):
    """
    Raised when a distributed lock cannot be acquired in time.

    Another request holds the lock for the same payable, invoice or bank
    transaction. Retryable: nothing was written.

    Attributes:
        details: Contains key and timeout information
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    # Validation
    "InvalidAmount",
    "InvalidShareFraction",
    "ReversalReasonRequired",
    "DirectionMismatch",
    # Conflict
    "AlreadyReversed",
    "PayableClosed",
    "AllocationOverflow",
    "AllocationLocked",
    "InvoiceAlreadyCancelled",
    "TransactionAlreadyProcessed",
    "InvalidStateTransitionError",
    "StaleRecordError",
    # Not found
    "InvoiceNotFound",
    "PayableNotFound",
    "PaymentNotFound",
    "ReceiptNotFound",
    "TransactionNotFound",
    # Storage
    "LockAcquisitionError",
]
