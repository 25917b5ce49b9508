"""
Bank reconciler: matches imported bank transactions to open obligations.

Matching is by monetary proximity only. A debit (money out) is matched
against open payables; a credit (money in) against allocations of invoices
still awaiting receipt. Candidates are ranked by |remaining - amount|,
ties broken by earliest expected date and then by id, so the same input
always yields the same order.

Confirming a match delegates to the payable ledger (debits) or the invoice
receipt path (credits) and marks the transaction conciliado. Reversing a
reconciliation reverses the linked payment or receipt and puts the
transaction back to pendente.

Usage:
    from billing.services import BankReconciler

    suggestions = BankReconciler.suggest_for_transaction(tenant_id, txn.id)
    best = suggestions[0]
    best.is_exact_match        # True when within one cent

    BankReconciler.confirm(
        tenant_id,
        txn.id,
        candidate_kind=best.candidate.kind,
        candidate_id=best.candidate.id,
        actor_id=user_id,
    )

    # Pure ranking, no database
    BankReconciler.suggest(Decimal("5100.00"), candidates)
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING

from django.db.models import DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce

from billing.exceptions import (
    DirectionMismatch,
    PayableNotFound,
    ReversalReasonRequired,
    TransactionAlreadyProcessed,
    TransactionNotFound,
)
from billing.locks import ledger_lock, translate_storage_errors
from billing.models import (
    BankTransaction,
    InvoiceAllocation,
    InvoiceReceipt,
    Payable,
    Payment,
)
from billing.money import (
    EPSILON,
    ZERO,
    amounts_match,
    outstanding_balance,
    quantize,
    to_decimal,
)
from billing.services.invoice_receipts import InvoiceReceiptService
from billing.services.payable_ledger import PayableLedger
from billing.state_machines import (
    BankTransactionStatus,
    InvoiceStatus,
    ObligationKind,
    ReconciledWithType,
)
from billing.types import (
    MatchSuggestion,
    OpenObligation,
    ReconciliationResult,
    ReconciliationReversal,
    obligation_from_allocation,
    obligation_from_payable,
)
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from typing import Any

# Prefix stamped on reversal reasons coming from an undone reconciliation
REVERSAL_PREFIX = "[ESTORNO CONCILIAÇÃO] "

_NON_DIGITS = re.compile(r"\D")


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


class BankReconciler(BaseService):
    """
    Service proposing and confirming bank transaction matches.

    suggest() and filter_candidates() are pure; everything else reads or
    writes tenant-scoped rows.
    """

    # =========================================================================
    # Ranking (pure)
    # =========================================================================

    @classmethod
    def suggest(
        cls,
        transaction_amount: Any,
        candidates: Iterable[OpenObligation],
    ) -> list[MatchSuggestion]:
        """
        Rank candidates by closeness to a transaction amount.

        Candidates with nothing left to pay are dropped. Order: difference
        ascending, then expected_date ascending (None last), then str(id).
        """
        amount = abs(to_decimal(transaction_amount))
        suggestions = []
        for candidate in candidates:
            remaining = to_decimal(candidate.remaining_balance, "remaining_balance")
            if remaining <= ZERO:
                continue
            difference = quantize(abs(remaining - amount))
            suggestions.append(
                MatchSuggestion(
                    candidate=candidate,
                    difference=difference,
                    is_exact_match=amounts_match(remaining, amount),
                )
            )

        suggestions.sort(
            key=lambda s: (
                s.difference,
                s.candidate.expected_date is None,
                s.candidate.expected_date or "",
                str(s.candidate.id),
            )
        )
        return suggestions

    @staticmethod
    def filter_candidates(
        candidates: Iterable[OpenObligation],
        search: str | None,
    ) -> list[OpenObligation]:
        """
        Case-insensitive substring filter on the searchable fields.

        Tax ids are compared digits-only, so "12.345.678/0001-90" and
        "12345678000190" find the same hospital. A blank search keeps
        everything.
        """
        candidates = list(candidates)
        term = (search or "").strip().lower()
        if not term:
            return candidates

        term_digits = _digits(term)
        matched = []
        for candidate in candidates:
            texts = (
                candidate.reference,
                candidate.payee_name,
                candidate.counterparty_tax_id,
                *candidate.search_extra,
            )
            if any(term in (text or "").lower() for text in texts):
                matched.append(candidate)
            elif term_digits and term_digits in _digits(candidate.counterparty_tax_id):
                matched.append(candidate)
        return matched

    # =========================================================================
    # Candidates
    # =========================================================================

    @classmethod
    def open_payables(cls, tenant_id: uuid.UUID) -> list[OpenObligation]:
        """Payables still open with more than a cent left to pay."""
        payables = (
            Payable.objects.for_tenant(tenant_id)
            .open()
            .select_related("invoice")
            .annotate(
                paid_total=Coalesce(
                    Sum("payments__amount", filter=Q(payments__reversed_at__isnull=True)),
                    Value(ZERO),
                    output_field=DecimalField(max_digits=14, decimal_places=2),
                )
            )
        )
        candidates = []
        for payable in payables:
            remaining = outstanding_balance(payable.amount_to_pay, [payable.paid_total])
            if remaining > EPSILON:
                candidates.append(obligation_from_payable(payable, remaining))
        return candidates

    @classmethod
    def open_allocations(cls, tenant_id: uuid.UUID) -> list[OpenObligation]:
        """Allocations of invoices still awaiting receipt."""
        allocations = (
            InvoiceAllocation.objects.for_tenant(tenant_id)
            .filter(
                invoice__status__in=[
                    InvoiceStatus.PENDENTE,
                    InvoiceStatus.PARCIALMENTE_RECEBIDO,
                ]
            )
            .select_related("invoice")
        )
        return [obligation_from_allocation(allocation) for allocation in allocations]

    @classmethod
    def suggest_for_transaction(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
        search: str | None = None,
    ) -> list[MatchSuggestion]:
        """
        Ranked candidates for one bank transaction.

        Debits are matched against payables, credits against allocations.
        """
        bank_transaction = cls._get_transaction(tenant_id, transaction_id)
        if bank_transaction.is_debit:
            candidates = cls.open_payables(tenant_id)
        else:
            candidates = cls.open_allocations(tenant_id)
        candidates = cls.filter_candidates(candidates, search)
        return cls.suggest(bank_transaction.amount, candidates)

    # =========================================================================
    # Confirmation
    # =========================================================================

    @classmethod
    @translate_storage_errors
    def confirm(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
        candidate_kind: str,
        candidate_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
        amount: Any = None,
        adjustment_reason: str | None = None,
    ) -> ReconciliationResult:
        """
        Confirm a match and record the resulting payment or receipt.

        Args:
            tenant_id: Owning tenant
            transaction_id: Bank transaction being reconciled
            candidate_kind: ObligationKind.PAYABLE or ObligationKind.ALLOCATION
            candidate_id: Payable id or allocation id
            actor_id: User confirming
            amount: Amount to book (defaults to the transaction amount)
            adjustment_reason: Passed to the receipt path for credits

        Raises:
            TransactionNotFound: Unknown transaction (or another tenant's)
            TransactionAlreadyProcessed: Transaction is not pendente
            DirectionMismatch: Credit against a payable or debit against
                an allocation
            PayableNotFound / NotFoundError: Unknown candidate
        """
        if candidate_kind not in ObligationKind.values:
            raise ValidationError(
                f"Unknown candidate kind {candidate_kind!r}",
                error_code="INVALID_CANDIDATE_KIND",
                details={"candidate_kind": str(candidate_kind)},
            )

        with ledger_lock("transaction", transaction_id):
            with cls.atomic():
                bank_transaction = cls._lock_transaction(tenant_id, transaction_id)
                if not bank_transaction.is_pending:
                    raise TransactionAlreadyProcessed(
                        f"Bank transaction {transaction_id} is {bank_transaction.status}",
                        details={
                            "transaction_id": str(transaction_id),
                            "status": bank_transaction.status,
                        },
                    )
                cls._check_direction(bank_transaction, candidate_kind)

                booked = (
                    bank_transaction.amount if amount is None else to_decimal(amount)
                )

                if candidate_kind == ObligationKind.PAYABLE:
                    payable = Payable.objects.for_tenant(tenant_id).get_or_none(
                        id=candidate_id
                    )
                    if payable is None:
                        raise PayableNotFound(
                            f"Payable {candidate_id} not found",
                            details={"payable_id": str(candidate_id)},
                        )
                    application = PayableLedger.apply_payment(
                        tenant_id=tenant_id,
                        payable_id=payable.id,
                        amount=booked,
                        bank_id=bank_transaction.bank_id,
                        payment_date=bank_transaction.transaction_date,
                        notes=bank_transaction.description,
                        bank_transaction_id=bank_transaction.id,
                        actor_id=actor_id,
                    )
                    bank_transaction.reconcile(
                        ReconciledWithType.PAYABLE, payable.id, actor_id
                    )
                else:
                    allocation = InvoiceAllocation.objects.for_tenant(
                        tenant_id
                    ).get_or_none(id=candidate_id)
                    if allocation is None:
                        raise NotFoundError(
                            f"Allocation {candidate_id} not found",
                            error_code="ALLOCATION_NOT_FOUND",
                            details={"allocation_id": str(candidate_id)},
                        )
                    application = InvoiceReceiptService.record_receipt(
                        tenant_id=tenant_id,
                        invoice_id=allocation.invoice_id,
                        amount=booked,
                        bank_id=bank_transaction.bank_id,
                        receipt_date=bank_transaction.transaction_date,
                        bank_transaction_id=bank_transaction.id,
                        actor_id=actor_id,
                        adjustment_reason=adjustment_reason,
                        notes=bank_transaction.description,
                    )
                    bank_transaction.reconcile(
                        ReconciledWithType.INVOICE, allocation.invoice_id, actor_id
                    )

                bank_transaction.save()

        cls.get_logger().info(
            "Bank transaction reconciled",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(transaction_id),
                "candidate_kind": candidate_kind,
                "candidate_id": str(candidate_id),
                "amount": str(booked),
            },
        )
        return ReconciliationResult(
            transaction=bank_transaction,
            kind=candidate_kind,
            application=application,
        )

    @classmethod
    @translate_storage_errors
    def reverse_reconciliation(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID | None,
    ) -> ReconciliationReversal:
        """
        Undo a confirmed match.

        The most recent active payment or receipt booked from the
        transaction is reversed (its reason prefixed with
        "[ESTORNO CONCILIAÇÃO] ") and the transaction returns to pendente.
        When the booking was already reversed elsewhere, only the
        transaction is reopened and reversal is None.

        Raises:
            ReversalReasonRequired: Blank reason
            TransactionNotFound: Unknown transaction (or another tenant's)
            ConflictError: Transaction is not conciliado
        """
        if not reason or not reason.strip():
            raise ReversalReasonRequired(
                "A reason is required to reverse a reconciliation",
                details={"transaction_id": str(transaction_id)},
            )
        full_reason = f"{REVERSAL_PREFIX}{reason.strip()}"

        with ledger_lock("transaction", transaction_id):
            with cls.atomic():
                bank_transaction = cls._lock_transaction(tenant_id, transaction_id)
                if bank_transaction.status != BankTransactionStatus.CONCILIADO:
                    raise ConflictError(
                        f"Bank transaction {transaction_id} is not reconciled",
                        error_code="TRANSACTION_NOT_RECONCILED",
                        details={
                            "transaction_id": str(transaction_id),
                            "status": bank_transaction.status,
                        },
                    )

                reversal = None
                if bank_transaction.reconciled_with_type == ReconciledWithType.PAYABLE:
                    payment = (
                        Payment.objects.for_tenant(tenant_id)
                        .active()
                        .filter(bank_transaction=bank_transaction)
                        .order_by("-created_at")
                        .first()
                    )
                    if payment is not None:
                        reversal = PayableLedger.reverse_payment(
                            tenant_id, payment.id, full_reason, actor_id
                        )
                else:
                    receipt = (
                        InvoiceReceipt.objects.for_tenant(tenant_id)
                        .active()
                        .filter(bank_transaction=bank_transaction)
                        .order_by("-created_at")
                        .first()
                    )
                    if receipt is not None:
                        reversal = InvoiceReceiptService.reverse_receipt(
                            tenant_id, receipt.id, full_reason, actor_id
                        )

                bank_transaction.reopen()
                bank_transaction.save()

        cls.get_logger().info(
            "Bank reconciliation reversed",
            extra={
                "tenant_id": str(tenant_id),
                "transaction_id": str(transaction_id),
                "reversed_entry": reversal is not None,
            },
        )
        return ReconciliationReversal(transaction=bank_transaction, reversal=reversal)

    @classmethod
    @translate_storage_errors
    def ignore_transaction(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
    ) -> BankTransaction:
        """Mark a pending transaction as not needing reconciliation."""
        with ledger_lock("transaction", transaction_id):
            with cls.atomic():
                bank_transaction = cls._lock_transaction(tenant_id, transaction_id)
                if not bank_transaction.is_pending:
                    raise TransactionAlreadyProcessed(
                        f"Bank transaction {transaction_id} is {bank_transaction.status}",
                        details={
                            "transaction_id": str(transaction_id),
                            "status": bank_transaction.status,
                        },
                    )
                bank_transaction.ignore(actor_id)
                bank_transaction.save()

        cls.get_logger().info(
            "Bank transaction ignored",
            extra={"tenant_id": str(tenant_id), "transaction_id": str(transaction_id)},
        )
        return bank_transaction

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _check_direction(bank_transaction: BankTransaction, candidate_kind: str) -> None:
        expected = (
            ObligationKind.PAYABLE if bank_transaction.is_debit else ObligationKind.ALLOCATION
        )
        if candidate_kind != expected:
            raise DirectionMismatch(
                f"A {bank_transaction.transaction_type} cannot be matched "
                f"to a {candidate_kind}",
                details={
                    "transaction_id": str(bank_transaction.id),
                    "transaction_type": bank_transaction.transaction_type,
                    "candidate_kind": candidate_kind,
                },
            )

    @classmethod
    def _get_transaction(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
    ) -> BankTransaction:
        bank_transaction = BankTransaction.objects.for_tenant(tenant_id).get_or_none(
            id=transaction_id
        )
        if bank_transaction is None:
            raise TransactionNotFound(
                f"Bank transaction {transaction_id} not found",
                details={"transaction_id": str(transaction_id)},
            )
        return bank_transaction

    @classmethod
    def _lock_transaction(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID,
    ) -> BankTransaction:
        bank_transaction = (
            BankTransaction.objects.for_tenant(tenant_id)
            .select_for_update()
            .get_or_none(id=transaction_id)
        )
        if bank_transaction is None:
            raise TransactionNotFound(
                f"Bank transaction {transaction_id} not found",
                details={"transaction_id": str(transaction_id)},
            )
        return bank_transaction


# Module-level singleton, mirrors the class-level API
bank_reconciler = BankReconciler
