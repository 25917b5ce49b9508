"""
Tests for InvoiceReceiptService.
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

import pytest

from billing.exceptions import (
    AlreadyReversed,
    InvalidAmount,
    InvoiceAlreadyCancelled,
    InvoiceNotFound,
    ReceiptNotFound,
    ReversalReasonRequired,
)
from billing.models import Invoice, InvoiceReceipt, Payable, ReceiptPaymentAdjustment
from billing.services import AllocationEngine, InvoiceReceiptService, PayableLedger
from billing.state_machines import AdjustmentType, InvoiceStatus, PayableStatus
from billing.types import AllocationShare
from core.exceptions import ConflictError

RECEIPT_DATE = datetime.date(2024, 4, 2)


def receive(tenant_id, invoice, amount, bank_id, **kwargs):
    return InvoiceReceiptService.record_receipt(
        tenant_id, invoice.id, Decimal(amount), bank_id, RECEIPT_DATE, **kwargs
    )


@pytest.mark.django_db
class TestRecordReceipt:
    """Tests for InvoiceReceiptService.record_receipt()."""

    def test_partial_receipt(self, tenant_id, invoice, bank_id):
        application = receive(tenant_id, invoice, "4000.00", bank_id)

        assert application.pending_balance == Decimal("6000.00")
        assert application.adjustment is None
        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.status == InvoiceStatus.PARCIALMENTE_RECEBIDO
        assert stored.total_received == Decimal("4000.00")
        assert stored.receipt_date is None
        assert stored.bank_id == bank_id

    def test_full_receipt_sets_receipt_date(self, tenant_id, invoice, bank_id):
        receive(tenant_id, invoice, "4000.00", bank_id)
        application = receive(tenant_id, invoice, "6000.00", bank_id)

        assert application.pending_balance == Decimal("0.00")
        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.status == InvoiceStatus.RECEBIDO
        assert stored.receipt_date == RECEIPT_DATE

    def test_short_receipt_with_reason_books_adjustment(
        self, tenant_id, invoice, bank_id, actor_id
    ):
        application = receive(
            tenant_id,
            invoice,
            "9850.00",
            bank_id,
            adjustment_reason="Glosa parcial",
            actor_id=actor_id,
        )

        adjustment = application.adjustment
        assert adjustment is not None
        assert adjustment.adjustment_type == AdjustmentType.RECEBIMENTO
        assert adjustment.expected_amount == Decimal("10000.00")
        assert adjustment.received_amount == Decimal("9850.00")
        assert adjustment.adjustment_amount == Decimal("-150.00")
        assert adjustment.reason == "Glosa parcial"
        assert application.receipt.adjustment_amount == Decimal("-150.00")
        # The adjustment explains the gap; it does not close the invoice
        assert application.invoice.status == InvoiceStatus.PARCIALMENTE_RECEBIDO

    def test_difference_without_reason_books_nothing(self, tenant_id, invoice, bank_id):
        application = receive(tenant_id, invoice, "9850.00", bank_id)

        assert application.adjustment is None
        assert application.receipt.adjustment_amount is None
        assert ReceiptPaymentAdjustment.objects.count() == 0

    def test_exact_amount_with_reason_books_nothing(self, tenant_id, invoice, bank_id):
        application = receive(
            tenant_id, invoice, "10000.00", bank_id, adjustment_reason="n/a"
        )

        assert application.adjustment is None

    def test_cancelled_invoice_rejected(self, tenant_id, invoice, bank_id):
        invoice.cancel()
        invoice.save()

        with pytest.raises(InvoiceAlreadyCancelled):
            receive(tenant_id, invoice, "10.00", bank_id)

    def test_non_positive_amount_rejected(self, tenant_id, invoice, bank_id):
        with pytest.raises(InvalidAmount):
            receive(tenant_id, invoice, "0", bank_id)

    def test_other_tenant_invoice_not_found(self, other_tenant_id, invoice, bank_id):
        with pytest.raises(InvoiceNotFound):
            receive(other_tenant_id, invoice, "10.00", bank_id)


@pytest.mark.django_db
class TestReverseReceipt:
    """Tests for InvoiceReceiptService.reverse_receipt()."""

    def test_reversing_only_receipt_returns_to_pending(self, tenant_id, invoice, bank_id):
        application = receive(tenant_id, invoice, "10000.00", bank_id)

        reversal = InvoiceReceiptService.reverse_receipt(
            tenant_id, application.receipt.id, "Devolvido pelo banco", None
        )

        assert reversal.pending_balance == Decimal("10000.00")
        stored = Invoice.objects.get(pk=invoice.pk)
        assert stored.status == InvoiceStatus.PENDENTE
        assert stored.total_received == Decimal("0.00")
        assert stored.receipt_date is None
        assert stored.bank_id is None
        assert InvoiceReceipt.objects.get(pk=application.receipt.pk).is_reversed

    def test_reversing_one_of_two_receipts(self, tenant_id, invoice, bank_id):
        first = receive(tenant_id, invoice, "4000.00", bank_id)
        receive(tenant_id, invoice, "6000.00", bank_id)

        reversal = InvoiceReceiptService.reverse_receipt(
            tenant_id, first.receipt.id, "Duplicado", None
        )

        assert reversal.invoice.status == InvoiceStatus.PARCIALMENTE_RECEBIDO
        assert reversal.invoice.total_received == Decimal("6000.00")

    def test_second_reversal_refused(self, tenant_id, invoice, bank_id):
        application = receive(tenant_id, invoice, "100.00", bank_id)
        InvoiceReceiptService.reverse_receipt(tenant_id, application.receipt.id, "x", None)

        with pytest.raises(AlreadyReversed):
            InvoiceReceiptService.reverse_receipt(
                tenant_id, application.receipt.id, "x", None
            )

    def test_reason_required(self, tenant_id, invoice, bank_id):
        application = receive(tenant_id, invoice, "100.00", bank_id)

        with pytest.raises(ReversalReasonRequired):
            InvoiceReceiptService.reverse_receipt(
                tenant_id, application.receipt.id, " ", None
            )

    def test_unknown_receipt(self, tenant_id):
        with pytest.raises(ReceiptNotFound):
            InvoiceReceiptService.reverse_receipt(tenant_id, uuid.uuid4(), "x", None)


@pytest.mark.django_db
class TestCancelInvoice:
    """Tests for InvoiceReceiptService.cancel_invoice()."""

    def _allocate(self, tenant_id, invoice):
        return AllocationEngine.allocate(
            tenant_id,
            invoice.id,
            [AllocationShare(doctor_id=uuid.uuid4(), percentage=Decimal("100"))],
        )

    def test_cancels_invoice_and_pending_payables(self, tenant_id, invoice, actor_id):
        result = self._allocate(tenant_id, invoice)

        cancelled = InvoiceReceiptService.cancel_invoice(tenant_id, invoice.id, actor_id)

        assert cancelled.status == InvoiceStatus.CANCELADO
        payable = Payable.objects.get(pk=result.payables[0].pk)
        assert payable.status == PayableStatus.CANCELADO
        assert payable.cancelled_by == actor_id

    def test_refused_with_active_receipts(self, tenant_id, invoice, bank_id):
        receive(tenant_id, invoice, "100.00", bank_id)

        with pytest.raises(ConflictError) as exc_info:
            InvoiceReceiptService.cancel_invoice(tenant_id, invoice.id)

        assert exc_info.value.error_code == "INVOICE_HAS_RECEIPTS"

    def test_refused_with_active_payments(self, tenant_id, invoice, bank_id):
        result = self._allocate(tenant_id, invoice)
        PayableLedger.apply_payment(
            tenant_id, result.payables[0].id, Decimal("10.00"), bank_id, RECEIPT_DATE
        )

        with pytest.raises(ConflictError) as exc_info:
            InvoiceReceiptService.cancel_invoice(tenant_id, invoice.id)

        assert exc_info.value.error_code == "INVOICE_HAS_PAYMENTS"

    def test_cancel_twice(self, tenant_id, invoice):
        InvoiceReceiptService.cancel_invoice(tenant_id, invoice.id)

        with pytest.raises(InvoiceAlreadyCancelled):
            InvoiceReceiptService.cancel_invoice(tenant_id, invoice.id)
