"""
Data types for ledger operations.

This module defines dataclasses used throughout the billing ledger for
type-safe data transfer between layers, plus the mapping functions that
turn model rows into those types at the storage boundary.

Types:
    AllocationShare: One requested split of an invoice
    AllocationLine: Computed values for one share (no database writes)
    AllocationResult: Rows written by AllocationEngine.allocate()
    AllocationSummary: Allocated vs unallocated totals for an invoice
    PaymentApplication / PaymentReversal: Payable ledger results
    ReceiptApplication / ReceiptReversal: Invoice receipt results
    OpenObligation: Match candidate (open payable or allocation)
    MatchSuggestion: Ranked candidate with difference and exact flag
    ReconciliationResult / ReconciliationReversal: Bank reconciler results

Usage:
    from billing.types import AllocationShare, OpenObligation

    shares = [
        AllocationShare(doctor_id=a_id, percentage=Decimal("60"),
                        admin_fee_percentage=Decimal("10")),
        AllocationShare(doctor_id=b_id, percentage=Decimal("40"),
                        admin_fee_percentage=Decimal("10")),
    ]

    candidate = obligation_from_payable(payable, remaining_balance)
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from billing.money import EPSILON, ZERO
from billing.state_machines import ObligationKind

if TYPE_CHECKING:
    from billing.models import (
        BankTransaction,
        Invoice,
        InvoiceAllocation,
        InvoiceReceipt,
        Payable,
        Payment,
        ReceiptPaymentAdjustment,
        Revenue,
    )


# =============================================================================
# Allocation
# =============================================================================


@dataclass(frozen=True)
class AllocationShare:
    """
    One requested split of an invoice's net value.

    Exactly one of percentage or fixed_amount must be given.

    Attributes:
        doctor_id: Doctor receiving the share
        percentage: Share of the net value, in (0, 100]
        fixed_amount: Absolute share of the net value, > 0
        admin_fee_percentage: Administration fee rate, in [0, 100]
        doctor_name: Display name stored with the allocation
    """

    doctor_id: uuid.UUID
    percentage: Decimal | None = None
    fixed_amount: Decimal | None = None
    admin_fee_percentage: Decimal = Decimal("0")
    doctor_name: str = ""


@dataclass
class AllocationLine:
    """
    Computed values for one share, before anything is written.

    Attributes:
        proportional_taxes: Apportioned value per tax name (iss, irrf, ...)
        proportional_deductions: Taxes subtracted from amount_to_pay
    """

    doctor_id: uuid.UUID
    doctor_name: str
    share_fraction: Decimal
    allocated_net_value: Decimal
    admin_fee_percentage: Decimal
    admin_fee: Decimal
    proportional_taxes: dict[str, Decimal]
    proportional_deductions: Decimal
    amount_to_pay: Decimal

    def proportional(self, tax: str) -> Decimal:
        return self.proportional_taxes.get(tax, ZERO)


@dataclass
class AllocationResult:
    """Rows written by one allocate() call, in share order."""

    allocations: list[InvoiceAllocation]
    payables: list[Payable]

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.allocated_net_value for a in self.allocations), ZERO)


@dataclass
class AllocationSummary:
    """
    Allocation totals for one invoice.

    Attributes:
        net_value: Invoice net value
        total_allocated: Sum of allocated_net_value
        unallocated: net_value - total_allocated
        allocation_count: Number of allocations
    """

    invoice_id: uuid.UUID
    net_value: Decimal
    total_allocated: Decimal
    unallocated: Decimal
    allocation_count: int

    @property
    def is_fully_allocated(self) -> bool:
        return abs(self.unallocated) <= EPSILON


# =============================================================================
# Payments and receipts
# =============================================================================


@dataclass
class PaymentApplication:
    """
    Result of applying a payment.

    Attributes:
        remaining_balance: Balance after the payment (negative if overpaid)
        is_overpayment: True when the payment took the balance below zero
    """

    payment: Payment
    payable: Payable
    remaining_balance: Decimal
    is_overpayment: bool = False


@dataclass
class PaymentReversal:
    """Result of reversing a payment."""

    payment: Payment
    payable: Payable
    revenue: Revenue
    remaining_balance: Decimal


@dataclass
class ReceiptApplication:
    """
    Result of recording an invoice receipt.

    Attributes:
        pending_balance: net_value - total_received after the receipt
        adjustment: Adjustment row when the amount differed and a reason was given
    """

    receipt: InvoiceReceipt
    invoice: Invoice
    pending_balance: Decimal
    adjustment: ReceiptPaymentAdjustment | None = None


@dataclass
class ReceiptReversal:
    receipt: InvoiceReceipt
    invoice: Invoice
    pending_balance: Decimal


# =============================================================================
# Reconciliation
# =============================================================================


@dataclass(frozen=True)
class OpenObligation:
    """
    A candidate for matching a bank transaction.

    Attributes:
        kind: ObligationKind.PAYABLE or ObligationKind.ALLOCATION
        id: Payable id or allocation id
        remaining_balance: Amount still open
        expected_date: Expected payment/receipt date (None sorts last)
        reference: Invoice number
        payee_name: Doctor name (payables) or hospital name (allocations)
        counterparty_tax_id: Payer CNPJ (allocations)
        invoice_id: Invoice the obligation belongs to
    """

    kind: str
    id: uuid.UUID
    remaining_balance: Decimal
    expected_date: datetime.date | None = None
    reference: str = ""
    payee_name: str = ""
    counterparty_tax_id: str = ""
    invoice_id: uuid.UUID | None = None
    search_extra: tuple[str, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class MatchSuggestion:
    """
    One ranked candidate.

    Attributes:
        difference: |remaining_balance - transaction amount|
        is_exact_match: difference < 0.01
    """

    candidate: OpenObligation
    difference: Decimal
    is_exact_match: bool


@dataclass
class ReconciliationResult:
    """
    Result of confirming a match.

    application is a PaymentApplication (payable) or ReceiptApplication
    (allocation).
    """

    transaction: BankTransaction
    kind: str
    application: PaymentApplication | ReceiptApplication


@dataclass
class ReconciliationReversal:
    """reversal is None when the booked entry had already been reversed."""

    transaction: BankTransaction
    reversal: PaymentReversal | ReceiptReversal | None


# =============================================================================
# Mapping functions (storage boundary)
# =============================================================================


def obligation_from_payable(payable: Payable, remaining_balance: Decimal) -> OpenObligation:
    """Map a payable row (with its invoice loaded) to a match candidate."""
    invoice = payable.invoice
    return OpenObligation(
        kind=ObligationKind.PAYABLE,
        id=payable.id,
        remaining_balance=remaining_balance,
        expected_date=payable.expected_payment_date,
        reference=invoice.invoice_number,
        payee_name=payable.doctor_name,
        counterparty_tax_id="",
        invoice_id=invoice.id,
        search_extra=(invoice.company_name,),
    )


def obligation_from_allocation(allocation: InvoiceAllocation) -> OpenObligation:
    """
    Map an allocation row (with its invoice loaded) to a match candidate.

    The open amount is the invoice-level pending balance
    (net_value - total_received), since the payer pays the invoice.
    """
    invoice = allocation.invoice
    return OpenObligation(
        kind=ObligationKind.ALLOCATION,
        id=allocation.id,
        remaining_balance=invoice.pending_balance,
        expected_date=invoice.expected_receipt_date,
        reference=invoice.invoice_number,
        payee_name=invoice.hospital_name,
        counterparty_tax_id=invoice.payer_tax_id,
        invoice_id=invoice.id,
        search_extra=(invoice.company_name,),
    )
