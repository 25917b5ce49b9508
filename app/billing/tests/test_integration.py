"""
End-to-end ledger flows.

Walks an invoice from allocation through payment, reversal and bank
reconciliation using only the public service API.
"""

import datetime
import uuid
from decimal import Decimal

import pytest

from billing.models import BankTransaction, Invoice, Payable, Revenue
from billing.services import (
    AllocationEngine,
    BankReconciler,
    PayableLedger,
)
from billing.state_machines import (
    BankTransactionStatus,
    InvoiceStatus,
    ObligationKind,
    PayableStatus,
    RevenueType,
)
from billing.tests.factories import BankTransactionFactory, PayableFactory
from billing.types import AllocationShare

PAYMENT_DATE = datetime.date(2024, 4, 10)


@pytest.fixture
def doctors():
    return uuid.uuid4(), uuid.uuid4()


@pytest.fixture
def allocated(tenant_id, invoice, doctors, actor_id):
    """Invoice split 60/40 with a 10% admin fee."""
    doctor_a, doctor_b = doctors
    return AllocationEngine.allocate(
        tenant_id,
        invoice.id,
        [
            AllocationShare(
                doctor_id=doctor_a,
                percentage=Decimal("60"),
                admin_fee_percentage=Decimal("10"),
                doctor_name="Dr. A",
            ),
            AllocationShare(
                doctor_id=doctor_b,
                percentage=Decimal("40"),
                admin_fee_percentage=Decimal("10"),
                doctor_name="Dr. B",
            ),
        ],
        actor_id=actor_id,
    )


@pytest.mark.django_db
class TestAllocationToPayment:
    def test_sixty_forty_allocation(self, allocated):
        allocation_a = allocated.allocations[0]
        payable_a = allocated.payables[0]

        assert allocation_a.allocated_net_value == Decimal("6000.00")
        assert allocation_a.proportional_iss == Decimal("300.00")
        assert allocation_a.admin_fee == Decimal("600.00")
        assert payable_a.amount_to_pay == Decimal("5100.00")
        assert allocated.payables[1].amount_to_pay == Decimal("3400.00")

    def test_full_payment_then_reversal(self, tenant_id, allocated, bank_id, actor_id):
        payable_a = allocated.payables[0]

        application = PayableLedger.apply_payment(
            tenant_id, payable_a.id, Decimal("5100.00"), bank_id, PAYMENT_DATE
        )

        assert application.payable.status == PayableStatus.PAGO
        assert application.remaining_balance == Decimal("0.00")

        reversal = PayableLedger.reverse_payment(
            tenant_id, application.payment.id, "erro de banco", actor_id
        )

        assert Payable.objects.get(pk=payable_a.pk).status == PayableStatus.PENDENTE
        assert reversal.remaining_balance == Decimal("5100.00")
        revenue = Revenue.objects.for_tenant(tenant_id).get()
        assert revenue.amount == Decimal("5100.00")
        assert revenue.revenue_type == RevenueType.ESTORNO_PAGAMENTO

    def test_partial_payments(self, tenant_id, bank_id):
        payable = PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("1000.00"))

        first = PayableLedger.apply_payment(
            tenant_id, payable.id, Decimal("400.00"), bank_id, PAYMENT_DATE
        )
        assert first.payable.status == PayableStatus.PARCIALMENTE_PAGO
        assert first.remaining_balance == Decimal("600.00")

        second = PayableLedger.apply_payment(
            tenant_id, payable.id, Decimal("600.00"), bank_id, PAYMENT_DATE
        )
        assert second.payable.status == PayableStatus.PAGO
        assert second.remaining_balance == Decimal("0.00")


@pytest.mark.django_db
class TestReconciliationFlow:
    def test_debit_suggests_exact_payable_first(self, tenant_id, debit_transaction):
        exact = PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("5100.00"))
        close = PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("4999.00"))

        suggestions = BankReconciler.suggest_for_transaction(
            tenant_id, debit_transaction.id
        )

        assert [s.candidate.id for s in suggestions] == [exact.id, close.id]
        assert suggestions[0].is_exact_match is True
        assert suggestions[1].difference == Decimal("101.00")

    def test_statement_drives_both_sides(
        self, tenant_id, invoice, allocated, credit_transaction, actor_id
    ):
        """Credit settles the invoice, debits pay both doctors."""
        suggestions = BankReconciler.suggest_for_transaction(
            tenant_id, credit_transaction.id
        )
        # One candidate per allocation, each carrying the invoice balance
        assert {s.candidate.id for s in suggestions} == {
            a.id for a in allocated.allocations
        }
        assert all(
            s.candidate.remaining_balance == Decimal("10000.00") for s in suggestions
        )
        receipt_match = suggestions[0]
        BankReconciler.confirm(
            tenant_id,
            credit_transaction.id,
            receipt_match.candidate.kind,
            receipt_match.candidate.id,
            actor_id=actor_id,
        )
        stored_invoice = Invoice.objects.get(pk=invoice.pk)
        assert stored_invoice.status == InvoiceStatus.RECEBIDO
        assert stored_invoice.total_received == Decimal("10000.00")

        for payable, amount in zip(
            allocated.payables, [Decimal("5100.00"), Decimal("3400.00")]
        ):
            debit = BankTransactionFactory(tenant_id=tenant_id, amount=amount)
            best = BankReconciler.suggest_for_transaction(tenant_id, debit.id)[0]
            assert best.candidate.id == payable.id
            BankReconciler.confirm(
                tenant_id, debit.id, ObligationKind.PAYABLE, best.candidate.id
            )

        assert set(
            Payable.objects.for_tenant(tenant_id).values_list("status", flat=True)
        ) == {PayableStatus.PAGO}
        assert BankReconciler.open_payables(tenant_id) == []
        assert BankReconciler.open_allocations(tenant_id) == []
        assert (
            BankTransaction.objects.for_tenant(tenant_id)
            .filter(status=BankTransactionStatus.PENDENTE)
            .count()
            == 0
        )

    def test_undo_reconciliation_reopens_obligation(self, tenant_id, allocated, bank_id):
        payable_a = allocated.payables[0]
        debit = BankTransactionFactory(tenant_id=tenant_id, amount=Decimal("5100.00"))
        BankReconciler.confirm(tenant_id, debit.id, ObligationKind.PAYABLE, payable_a.id)

        BankReconciler.reverse_reconciliation(tenant_id, debit.id, "lançado errado", None)

        suggestions = BankReconciler.suggest_for_transaction(tenant_id, debit.id)
        assert suggestions[0].candidate.id == payable_a.id
        assert suggestions[0].is_exact_match is True
        assert Revenue.objects.for_tenant(tenant_id).count() == 1
