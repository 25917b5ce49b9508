"""
Invoice receipts: money coming in from the paying hospital.

A receipt raises the invoice's total_received; the invoice status is then
recomputed from the sum of active receipts. When the amount received
differs from what was pending and the operator gives a reason, the
difference is booked as a ReceiptPaymentAdjustment (glosa, bank fee,
interest) instead of being silently absorbed.

Usage:
    from billing.services import InvoiceReceiptService

    application = InvoiceReceiptService.record_receipt(
        tenant_id=tenant_id,
        invoice_id=invoice.id,
        amount=Decimal("9850.00"),
        bank_id=bank_id,
        receipt_date=date.today(),
        adjustment_reason="Glosa parcial",
        actor_id=user_id,
    )
    application.adjustment.adjustment_amount   # Decimal("-150.00")
    application.invoice.status                 # "parcialmente_recebido"
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from billing.audit import AuditAction, audit
from billing.exceptions import (
    AlreadyReversed,
    InvalidAmount,
    InvalidStateTransitionError,
    InvoiceAlreadyCancelled,
    InvoiceNotFound,
    ReceiptNotFound,
    ReversalReasonRequired,
    TransactionNotFound,
)
from billing.locks import ledger_lock, translate_storage_errors
from billing.models import (
    BankTransaction,
    Invoice,
    InvoiceReceipt,
    Payable,
    Payment,
    ReceiptPaymentAdjustment,
)
from billing.money import EPSILON, ZERO, quantize, to_decimal
from billing.state_machines import AdjustmentType, PayableStatus
from billing.types import ReceiptApplication, ReceiptReversal
from core.exceptions import ConflictError
from core.services import BaseService

if TYPE_CHECKING:
    from typing import Any


class InvoiceReceiptService(BaseService):
    """
    Service for the receiving side of the ledger.

    Receipts on the same invoice are serialized by the "invoice:<id>" lock
    plus select_for_update() on the invoice row.
    """

    @classmethod
    @translate_storage_errors
    def record_receipt(
        cls,
        tenant_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Any,
        bank_id: uuid.UUID,
        receipt_date: datetime.date,
        bank_transaction_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
        adjustment_reason: str | None = None,
        notes: str | None = None,
    ) -> ReceiptApplication:
        """
        Record money received for an invoice.

        Args:
            tenant_id: Owning tenant
            invoice_id: Invoice being paid by the hospital
            amount: Amount received (> 0)
            bank_id: Bank account credited
            receipt_date: Value date
            bank_transaction_id: Statement line the receipt came from
            actor_id: User recording the receipt
            adjustment_reason: Why the amount differs from the pending
                balance; without it no adjustment is booked
            notes: Free text

        Returns:
            ReceiptApplication (adjustment is None when none was booked)

        Raises:
            InvalidAmount: amount <= 0 or unparseable
            InvoiceNotFound: Unknown invoice (or another tenant's)
            InvoiceAlreadyCancelled: Invoice is cancelled
            LockAcquisitionError: Invoice lock busy (retryable)
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmount(
                "Receipt amount must be greater than zero",
                details={"amount": str(amount), "invoice_id": str(invoice_id)},
            )
        reason = (adjustment_reason or "").strip()

        with ledger_lock("invoice", invoice_id):
            with cls.atomic():
                invoice = cls._lock_invoice(tenant_id, invoice_id)
                if invoice.is_cancelled:
                    raise InvoiceAlreadyCancelled(
                        f"Invoice {invoice.invoice_number} is cancelled",
                        details={"invoice_id": str(invoice_id)},
                    )

                bank_transaction = cls._get_transaction(tenant_id, bank_transaction_id)
                pending_before = quantize(
                    Decimal(invoice.net_value) - invoice.receipts.active().total()
                )
                difference = quantize(amount - pending_before)
                books_adjustment = abs(difference) >= EPSILON and bool(reason)

                receipt = InvoiceReceipt.objects.create(
                    tenant_id=tenant_id,
                    invoice=invoice,
                    bank_id=bank_id,
                    amount=amount,
                    receipt_date=receipt_date,
                    bank_transaction=bank_transaction,
                    adjustment_amount=difference if books_adjustment else None,
                    adjustment_reason=reason if books_adjustment else "",
                    notes=notes or "",
                    created_by=actor_id,
                )
                audit.record(AuditAction.INSERT, receipt, actor_id=actor_id)

                adjustment = None
                if books_adjustment:
                    adjustment = ReceiptPaymentAdjustment.objects.create(
                        tenant_id=tenant_id,
                        adjustment_type=AdjustmentType.RECEBIMENTO,
                        invoice=invoice,
                        receipt=receipt,
                        bank_id=bank_id,
                        bank_transaction=bank_transaction,
                        expected_amount=pending_before,
                        received_amount=amount,
                        adjustment_amount=difference,
                        adjustment_date=receipt_date,
                        reason=reason,
                        notes=notes or "",
                        created_by=actor_id,
                    )

                cls._sync_invoice(invoice, receipt_date, bank_id, actor_id)

        if adjustment is not None:
            cls.get_logger().info(
                "Receipt adjustment booked",
                extra={
                    "invoice_id": str(invoice_id),
                    "adjustment_id": str(adjustment.id),
                    "adjustment_amount": str(difference),
                },
            )
        cls.get_logger().info(
            "Receipt recorded",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice_id),
                "receipt_id": str(receipt.id),
                "amount": str(amount),
                "status": invoice.status,
            },
        )
        return ReceiptApplication(
            receipt=receipt,
            invoice=invoice,
            pending_balance=invoice.pending_balance,
            adjustment=adjustment,
        )

    @classmethod
    @translate_storage_errors
    def reverse_receipt(
        cls,
        tenant_id: uuid.UUID,
        receipt_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID | None,
    ) -> ReceiptReversal:
        """
        Reverse a receipt and recompute the invoice from what is left.

        Raises:
            ReversalReasonRequired: Blank reason
            ReceiptNotFound: Unknown receipt (or another tenant's)
            AlreadyReversed: Receipt was already reversed
        """
        if not reason or not reason.strip():
            raise ReversalReasonRequired(
                "A reason is required to reverse a receipt",
                details={"receipt_id": str(receipt_id)},
            )

        found = InvoiceReceipt.objects.for_tenant(tenant_id).get_or_none(id=receipt_id)
        if found is None:
            raise ReceiptNotFound(
                f"Receipt {receipt_id} not found",
                details={"receipt_id": str(receipt_id)},
            )

        with ledger_lock("invoice", found.invoice_id):
            with cls.atomic():
                invoice = cls._lock_invoice(tenant_id, found.invoice_id)
                receipt = (
                    InvoiceReceipt.objects.for_tenant(tenant_id)
                    .select_for_update()
                    .get(id=receipt_id)
                )
                if receipt.is_reversed:
                    raise AlreadyReversed(
                        f"Receipt {receipt_id} was already reversed",
                        details={
                            "receipt_id": str(receipt_id),
                            "reversed_at": receipt.reversed_at.isoformat(),
                        },
                    )

                before = audit.snapshot(receipt)
                receipt.mark_reversed(reason.strip(), actor_id)
                receipt.save(
                    update_fields=[
                        "reversed_at",
                        "reversed_by",
                        "reversal_reason",
                        "updated_at",
                    ]
                )
                audit.record(
                    AuditAction.UPDATE, receipt, old_data=before, actor_id=actor_id
                )

                cls._sync_invoice(invoice, None, invoice.bank_id, actor_id)

        cls.get_logger().info(
            "Receipt reversed",
            extra={
                "tenant_id": str(tenant_id),
                "receipt_id": str(receipt_id),
                "invoice_id": str(invoice.id),
                "status": invoice.status,
            },
        )
        return ReceiptReversal(
            receipt=receipt,
            invoice=invoice,
            pending_balance=invoice.pending_balance,
        )

    @classmethod
    @translate_storage_errors
    def cancel_invoice(
        cls,
        tenant_id: uuid.UUID,
        invoice_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
    ) -> Invoice:
        """
        Cancel an invoice and its pending payables.

        Raises:
            InvoiceNotFound: Unknown invoice (or another tenant's)
            InvoiceAlreadyCancelled: Invoice is already cancelled
            ConflictError: Active receipts or payments exist
            InvalidStateTransitionError: Invoice is not pendente
        """
        with ledger_lock("invoice", invoice_id):
            with cls.atomic():
                invoice = cls._lock_invoice(tenant_id, invoice_id)
                if invoice.is_cancelled:
                    raise InvoiceAlreadyCancelled(
                        f"Invoice {invoice.invoice_number} is already cancelled",
                        details={"invoice_id": str(invoice_id)},
                    )
                if invoice.receipts.active().exists():
                    raise ConflictError(
                        f"Invoice {invoice.invoice_number} has active receipts",
                        error_code="INVOICE_HAS_RECEIPTS",
                        details={"invoice_id": str(invoice_id)},
                    )
                has_payments = (
                    Payment.objects.for_tenant(tenant_id)
                    .active()
                    .filter(payable__invoice=invoice)
                    .exists()
                )
                if has_payments:
                    raise ConflictError(
                        f"Invoice {invoice.invoice_number} has active payments",
                        error_code="INVOICE_HAS_PAYMENTS",
                        details={"invoice_id": str(invoice_id)},
                    )

                before = audit.snapshot(invoice)
                try:
                    invoice.cancel()
                except TransitionNotAllowed as exc:
                    raise InvalidStateTransitionError(
                        f"Cannot cancel invoice from '{invoice.status}'",
                        details={
                            "invoice_id": str(invoice_id),
                            "current_state": invoice.status,
                            "transition": "cancel",
                        },
                    ) from exc
                invoice.save()
                audit.record(
                    AuditAction.UPDATE, invoice, old_data=before, actor_id=actor_id
                )

                payables = (
                    Payable.objects.for_tenant(tenant_id)
                    .select_for_update()
                    .filter(invoice=invoice, status=PayableStatus.PENDENTE)
                )
                cancelled = 0
                for payable in payables:
                    payable_before = audit.snapshot(payable)
                    payable.cancel(actor_id)
                    payable.save()
                    audit.record(
                        AuditAction.UPDATE,
                        payable,
                        old_data=payable_before,
                        actor_id=actor_id,
                    )
                    cancelled += 1

        cls.get_logger().info(
            "Invoice cancelled",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice_id),
                "cancelled_payables": cancelled,
            },
        )
        return invoice

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _lock_invoice(cls, tenant_id: uuid.UUID, invoice_id: uuid.UUID) -> Invoice:
        invoice = (
            Invoice.objects.for_tenant(tenant_id)
            .select_for_update()
            .get_or_none(id=invoice_id)
        )
        if invoice is None:
            raise InvoiceNotFound(
                f"Invoice {invoice_id} not found",
                details={"invoice_id": str(invoice_id)},
            )
        return invoice

    @classmethod
    def _get_transaction(
        cls,
        tenant_id: uuid.UUID,
        transaction_id: uuid.UUID | None,
    ) -> BankTransaction | None:
        if transaction_id is None:
            return None
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
    def _sync_invoice(
        cls,
        invoice: Invoice,
        receipt_date: datetime.date | None,
        bank_id: uuid.UUID | None,
        actor_id: uuid.UUID | None,
    ) -> None:
        """Recompute total_received and status from the active receipts."""
        before = audit.snapshot(invoice)
        total = invoice.receipts.active().total()
        invoice.sync_receipt_status(total, receipt_date)
        # bank_id follows the last receipt and is cleared when nothing is left
        invoice.bank_id = bank_id if total > ZERO else None
        invoice.save()
        audit.record(AuditAction.UPDATE, invoice, old_data=before, actor_id=actor_id)


# Module-level singleton, mirrors the class-level API
invoice_receipts = InvoiceReceiptService
