"""
Tests for PayableLedger.

Covers:
1. Applying partial, full and excess payments
2. Reversal with counter-revenue and status recomputation
3. Reversal safety (reason required, second reversal refused)
4. Cancellation, history and tenant isolation
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

import pytest
from freezegun import freeze_time

from billing.exceptions import (
    AlreadyReversed,
    InvalidAmount,
    InvalidStateTransitionError,
    LockAcquisitionError,
    PayableClosed,
    PayableNotFound,
    PaymentNotFound,
    ReversalReasonRequired,
    TransactionNotFound,
)
from billing.models import Payable, Payment, Revenue
from billing.services import PayableLedger
from billing.state_machines import PayableStatus, RevenueType
from billing.tests.factories import BankTransactionFactory, PayableFactory
from core.exceptions import ConflictError

PAYMENT_DATE = datetime.date(2024, 4, 10)


def pay(tenant_id, payable, amount, bank_id, **kwargs):
    return PayableLedger.apply_payment(
        tenant_id, payable.id, Decimal(amount), bank_id, PAYMENT_DATE, **kwargs
    )


@pytest.mark.django_db
class TestApplyPayment:
    """Tests for PayableLedger.apply_payment()."""

    def test_partial_payment(self, tenant_id, payable, bank_id, actor_id):
        application = pay(tenant_id, payable, "3000.00", bank_id, actor_id=actor_id)

        assert application.remaining_balance == Decimal("2100.00")
        assert application.is_overpayment is False
        stored = Payable.objects.get(pk=payable.pk)
        assert stored.status == PayableStatus.PARCIALMENTE_PAGO
        assert stored.paid_at is None
        assert application.payment.created_by == actor_id

    def test_payment_completing_balance(self, tenant_id, payable, bank_id):
        pay(tenant_id, payable, "3000.00", bank_id)
        application = pay(tenant_id, payable, "2100.00", bank_id)

        assert application.remaining_balance == Decimal("0.00")
        stored = Payable.objects.get(pk=payable.pk)
        assert stored.status == PayableStatus.PAGO
        assert stored.paid_at is not None

    @freeze_time("2024-04-10 09:00:00")
    def test_paid_at_stamped_when_settled(self, tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "5100.00", bank_id)

        assert application.payable.paid_at.isoformat().startswith("2024-04-10T09:00")

    def test_within_a_cent_counts_as_paid(self, tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "5099.99", bank_id)

        assert application.payable.status == PayableStatus.PAGO

    def test_overpayment_is_flagged_not_refused(self, tenant_id, bank_id, mocker):
        payable = PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("100.00"))
        logger = mocker.patch.object(PayableLedger, "get_logger").return_value

        application = pay(tenant_id, payable, "150.00", bank_id)

        assert application.is_overpayment is True
        assert application.remaining_balance == Decimal("-50.00")
        assert application.payable.status == PayableStatus.PAGO
        logger.warning.assert_called_once()
        assert logger.warning.call_args[0][0] == "Payable overpaid"

    @pytest.mark.parametrize("amount", ["0", "-10.00"])
    def test_non_positive_amount_rejected(self, tenant_id, payable, bank_id, amount):
        with pytest.raises(InvalidAmount):
            pay(tenant_id, payable, amount, bank_id)

        assert Payment.objects.count() == 0

    def test_cancelled_payable_rejected(self, tenant_id, payable, bank_id):
        payable.cancel()
        payable.save()

        with pytest.raises(PayableClosed):
            pay(tenant_id, payable, "10.00", bank_id)

    def test_other_tenant_payable_not_found(self, other_tenant_id, payable, bank_id):
        with pytest.raises(PayableNotFound):
            pay(other_tenant_id, payable, "10.00", bank_id)

    def test_links_bank_transaction(self, tenant_id, payable, bank_id):
        txn = BankTransactionFactory(tenant_id=tenant_id)

        application = pay(
            tenant_id, payable, "10.00", bank_id, bank_transaction_id=txn.id
        )

        assert application.payment.bank_transaction_id == txn.id

    def test_unknown_bank_transaction(self, tenant_id, payable, bank_id):
        with pytest.raises(TransactionNotFound):
            pay(tenant_id, payable, "10.00", bank_id, bank_transaction_id=uuid.uuid4())

    def test_lock_busy_is_retryable(self, tenant_id, payable, bank_id, mock_redis, settings):
        settings.BILLING_LOCK_TIMEOUT = 0.05
        mock_redis.set.return_value = False

        with pytest.raises(LockAcquisitionError) as exc_info:
            pay(tenant_id, payable, "10.00", bank_id)

        assert exc_info.value.is_retryable is True
        assert Payment.objects.count() == 0


@pytest.mark.django_db
class TestReversePayment:
    """Tests for PayableLedger.reverse_payment()."""

    def test_reversal_books_revenue_and_restores_balance(
        self, tenant_id, payable, bank_id, actor_id
    ):
        application = pay(tenant_id, payable, "3000.00", bank_id)

        reversal = PayableLedger.reverse_payment(
            tenant_id, application.payment.id, "Pago em duplicidade", actor_id
        )

        assert reversal.remaining_balance == Decimal("5100.00")
        assert PayableLedger.remaining_balance(tenant_id, payable.id) == Decimal("5100.00")
        assert Payable.objects.get(pk=payable.pk).status == PayableStatus.PENDENTE

        payment = Payment.objects.get(pk=application.payment.pk)
        assert payment.is_reversed is True
        assert payment.reversed_by == actor_id
        assert payment.reversal_reason == "Pago em duplicidade"

        revenue = Revenue.objects.get(source_payment=payment)
        assert revenue.revenue_type == RevenueType.ESTORNO_PAGAMENTO
        assert revenue.amount == Decimal("3000.00")
        assert revenue.bank_id == bank_id

    @freeze_time("2024-05-02 15:30:00")
    def test_reversal_revenue_dated_today(self, tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "3000.00", bank_id)

        reversal = PayableLedger.reverse_payment(
            tenant_id, application.payment.id, "Estorno", None
        )

        assert reversal.revenue.revenue_date == datetime.date(2024, 5, 2)
        assert reversal.revenue.description.startswith("Estorno de pagamento")

    def test_reversal_moves_out_of_paid(self, tenant_id, payable, bank_id):
        pay(tenant_id, payable, "3000.00", bank_id)
        second = pay(tenant_id, payable, "2100.00", bank_id)

        reversal = PayableLedger.reverse_payment(
            tenant_id, second.payment.id, "Valor errado", None
        )

        assert reversal.payable.status == PayableStatus.PARCIALMENTE_PAGO
        assert reversal.payable.paid_at is None
        assert reversal.remaining_balance == Decimal("2100.00")

    def test_reversal_keeps_paid_when_still_covered(self, tenant_id, payable, bank_id):
        pay(tenant_id, payable, "5100.00", bank_id)
        extra = pay(tenant_id, payable, "100.00", bank_id)

        reversal = PayableLedger.reverse_payment(
            tenant_id, extra.payment.id, "Pagamento a maior", None
        )

        assert reversal.payable.status == PayableStatus.PAGO
        assert reversal.payable.paid_at is not None

    def test_second_reversal_refused(self, tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "3000.00", bank_id)
        PayableLedger.reverse_payment(tenant_id, application.payment.id, "erro", None)

        with pytest.raises(AlreadyReversed):
            PayableLedger.reverse_payment(tenant_id, application.payment.id, "erro", None)

        assert Revenue.objects.count() == 1
        assert PayableLedger.remaining_balance(tenant_id, payable.id) == Decimal("5100.00")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, tenant_id, payable, bank_id, reason):
        application = pay(tenant_id, payable, "3000.00", bank_id)

        with pytest.raises(ReversalReasonRequired):
            PayableLedger.reverse_payment(tenant_id, application.payment.id, reason, None)

        assert Payment.objects.get(pk=application.payment.pk).is_reversed is False

    def test_other_tenant_payment_not_found(self, tenant_id, other_tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "3000.00", bank_id)

        with pytest.raises(PaymentNotFound):
            PayableLedger.reverse_payment(
                other_tenant_id, application.payment.id, "erro", None
            )


@pytest.mark.django_db
class TestCancelPayable:
    def test_cancel_pending_payable(self, tenant_id, payable, actor_id):
        cancelled = PayableLedger.cancel_payable(tenant_id, payable.id, actor_id)

        assert cancelled.status == PayableStatus.CANCELADO
        assert Payable.objects.get(pk=payable.pk).cancelled_by == actor_id

    def test_cancel_refused_with_active_payments(self, tenant_id, payable, bank_id):
        pay(tenant_id, payable, "10.00", bank_id)

        with pytest.raises(ConflictError) as exc_info:
            PayableLedger.cancel_payable(tenant_id, payable.id)

        assert exc_info.value.error_code == "PAYABLE_HAS_PAYMENTS"

    def test_cancel_allowed_after_reversal(self, tenant_id, payable, bank_id):
        application = pay(tenant_id, payable, "10.00", bank_id)
        PayableLedger.reverse_payment(tenant_id, application.payment.id, "erro", None)

        cancelled = PayableLedger.cancel_payable(tenant_id, payable.id)

        assert cancelled.status == PayableStatus.CANCELADO

    def test_cancel_twice_is_invalid_transition(self, tenant_id, payable):
        PayableLedger.cancel_payable(tenant_id, payable.id)

        with pytest.raises(InvalidStateTransitionError):
            PayableLedger.cancel_payable(tenant_id, payable.id)


@pytest.mark.django_db
class TestQueries:
    def test_payment_history_includes_reversed(self, tenant_id, payable, bank_id):
        first = pay(tenant_id, payable, "10.00", bank_id)
        second = pay(tenant_id, payable, "20.00", bank_id)
        PayableLedger.reverse_payment(tenant_id, first.payment.id, "erro", None)

        history = PayableLedger.payment_history(tenant_id, payable.id)

        assert [p.id for p in history] == [second.payment.id, first.payment.id]
        assert history[1].is_reversed is True

    def test_remaining_balance_unknown_payable(self, tenant_id):
        with pytest.raises(PayableNotFound):
            PayableLedger.remaining_balance(tenant_id, uuid.uuid4())
