"""
State machine enums for billing models.

This module defines the state enums used by billing models with django-fsm.
"""

from billing.state_machines.states import (
    AdjustmentType,
    BankTransactionStatus,
    InvoiceStatus,
    ObligationKind,
    PayableStatus,
    ReconciledWithType,
    RevenueType,
    TransactionType,
)

__all__ = [
    "AdjustmentType",
    "BankTransactionStatus",
    "InvoiceStatus",
    "ObligationKind",
    "PayableStatus",
    "ReconciledWithType",
    "RevenueType",
    "TransactionType",
]
