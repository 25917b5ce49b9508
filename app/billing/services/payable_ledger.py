"""
Payable ledger: payments against payables and their reversal.

Payments only ever accumulate; a payment is never edited or deleted.
Undoing one marks it reversed and books a counter-revenue entry
(estorno_pagamento) on the same bank account, so the cash trail stays
complete. A payable's remaining balance is always derived from its
active payments.

Concurrency:
    apply_payment and reverse_payment on the same payable are serialized
    by a distributed lock ("payable:<id>") plus select_for_update() on the
    payable row inside transaction.atomic().

Usage:
    from billing.services import PayableLedger

    application = PayableLedger.apply_payment(
        tenant_id=tenant_id,
        payable_id=payable.id,
        amount=Decimal("3000.00"),
        bank_id=bank_id,
        payment_date=date.today(),
        actor_id=user_id,
    )
    application.payable.status        # "parcialmente_pago"
    application.remaining_balance     # Decimal("2100.00")

    reversal = PayableLedger.reverse_payment(
        tenant_id, application.payment.id, reason="Pago em duplicidade",
        actor_id=user_id,
    )
    reversal.revenue.revenue_type     # "estorno_pagamento"
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from django_fsm import TransitionNotAllowed

from billing.audit import AuditAction, audit
from billing.exceptions import (
    AlreadyReversed,
    InvalidAmount,
    InvalidStateTransitionError,
    PayableClosed,
    PayableNotFound,
    PaymentNotFound,
    ReversalReasonRequired,
    TransactionNotFound,
)
from billing.locks import ledger_lock, translate_storage_errors
from billing.models import BankTransaction, Payable, Payment, Revenue
from billing.money import ZERO, outstanding_balance, to_decimal
from billing.state_machines import RevenueType
from billing.types import PaymentApplication, PaymentReversal
from core.exceptions import ConflictError
from core.services import BaseService

if TYPE_CHECKING:
    from typing import Any


class PayableLedger(BaseService):
    """
    Service for the payment side of the ledger.

    All write methods take an explicit tenant_id; a payable or payment of
    another tenant is reported as not found.
    """

    # =========================================================================
    # Payments
    # =========================================================================

    @classmethod
    @translate_storage_errors
    def apply_payment(
        cls,
        tenant_id: uuid.UUID,
        payable_id: uuid.UUID,
        amount: Any,
        bank_id: uuid.UUID,
        payment_date: datetime.date,
        notes: str | None = None,
        bank_transaction_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> PaymentApplication:
        """
        Record a payment against a payable.

        Overpayment is accepted: the remaining balance goes negative, the
        result is flagged and a warning is logged.

        Args:
            tenant_id: Owning tenant
            payable_id: Payable being paid
            amount: Amount paid (> 0)
            bank_id: Bank account the money left from
            payment_date: Value date
            notes: Free text
            bank_transaction_id: Statement line this payment came from
            actor_id: User recording the payment

        Returns:
            PaymentApplication with the new payment and updated payable

        Raises:
            InvalidAmount: amount <= 0 or unparseable
            PayableNotFound: Unknown payable (or another tenant's)
            PayableClosed: Payable is cancelled
            LockAcquisitionError: Payable lock busy (retryable)
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmount(
                "Payment amount must be greater than zero",
                details={"amount": str(amount), "payable_id": str(payable_id)},
            )

        with ledger_lock("payable", payable_id):
            with cls.atomic():
                payable = cls._lock_payable(tenant_id, payable_id)
                if payable.is_cancelled:
                    raise PayableClosed(
                        f"Payable {payable_id} is cancelled",
                        details={"payable_id": str(payable_id)},
                    )

                bank_transaction = None
                if bank_transaction_id is not None:
                    bank_transaction = BankTransaction.objects.for_tenant(
                        tenant_id
                    ).get_or_none(id=bank_transaction_id)
                    if bank_transaction is None:
                        raise TransactionNotFound(
                            f"Bank transaction {bank_transaction_id} not found",
                            details={"transaction_id": str(bank_transaction_id)},
                        )

                payment = Payment.objects.create(
                    tenant_id=tenant_id,
                    payable=payable,
                    bank_id=bank_id,
                    amount=amount,
                    payment_date=payment_date,
                    notes=notes or "",
                    bank_transaction=bank_transaction,
                    created_by=actor_id,
                )
                audit.record(AuditAction.INSERT, payment, actor_id=actor_id)

                paid_total = payable.active_paid_total()
                cls._sync_status(payable, paid_total, actor_id)
                remaining = outstanding_balance(payable.amount_to_pay, [paid_total])

        is_overpayment = remaining < ZERO
        if is_overpayment:
            cls.get_logger().warning(
                "Payable overpaid",
                extra={
                    "tenant_id": str(tenant_id),
                    "payable_id": str(payable_id),
                    "remaining_balance": str(remaining),
                },
            )

        cls.get_logger().info(
            "Payment applied",
            extra={
                "tenant_id": str(tenant_id),
                "payable_id": str(payable_id),
                "payment_id": str(payment.id),
                "amount": str(amount),
                "status": payable.status,
            },
        )
        return PaymentApplication(
            payment=payment,
            payable=payable,
            remaining_balance=remaining,
            is_overpayment=is_overpayment,
        )

    @classmethod
    @translate_storage_errors
    def reverse_payment(
        cls,
        tenant_id: uuid.UUID,
        payment_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID | None,
    ) -> PaymentReversal:
        """
        Reverse a payment and book the counter-revenue entry.

        The payment row is kept (reversed_at/by/reason stamped), a Revenue
        of type estorno_pagamento with the same amount and bank is created,
        and the payable status is recomputed from the remaining active
        payments.

        Raises:
            ReversalReasonRequired: Blank reason
            PaymentNotFound: Unknown payment (or another tenant's)
            AlreadyReversed: Payment was already reversed
            LockAcquisitionError: Payable lock busy (retryable)
        """
        if not reason or not reason.strip():
            raise ReversalReasonRequired(
                "A reason is required to reverse a payment",
                details={"payment_id": str(payment_id)},
            )

        found = Payment.objects.for_tenant(tenant_id).get_or_none(id=payment_id)
        if found is None:
            raise PaymentNotFound(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )

        with ledger_lock("payable", found.payable_id):
            with cls.atomic():
                payable = cls._lock_payable(tenant_id, found.payable_id)
                payment = (
                    Payment.objects.for_tenant(tenant_id)
                    .select_for_update()
                    .get(id=payment_id)
                )
                if payment.is_reversed:
                    raise AlreadyReversed(
                        f"Payment {payment_id} was already reversed",
                        details={
                            "payment_id": str(payment_id),
                            "reversed_at": payment.reversed_at.isoformat(),
                        },
                    )

                before = audit.snapshot(payment)
                payment.mark_reversed(reason.strip(), actor_id)
                payment.save(
                    update_fields=[
                        "reversed_at",
                        "reversed_by",
                        "reversal_reason",
                        "updated_at",
                    ]
                )
                audit.record(
                    AuditAction.UPDATE, payment, old_data=before, actor_id=actor_id
                )

                revenue = Revenue.objects.create(
                    tenant_id=tenant_id,
                    bank_id=payment.bank_id,
                    amount=payment.amount,
                    revenue_date=timezone.localdate(),
                    revenue_type=RevenueType.ESTORNO_PAGAMENTO,
                    description=f"Estorno de pagamento: {reason.strip()}"[:255],
                    source_payment=payment,
                    created_by=actor_id,
                )
                audit.record(AuditAction.INSERT, revenue, actor_id=actor_id)

                paid_total = payable.active_paid_total()
                cls._sync_status(payable, paid_total, actor_id)
                remaining = outstanding_balance(payable.amount_to_pay, [paid_total])

        cls.get_logger().info(
            "Payment reversed",
            extra={
                "tenant_id": str(tenant_id),
                "payment_id": str(payment_id),
                "payable_id": str(payable.id),
                "revenue_id": str(revenue.id),
                "status": payable.status,
            },
        )
        return PaymentReversal(
            payment=payment,
            payable=payable,
            revenue=revenue,
            remaining_balance=remaining,
        )

    # =========================================================================
    # Payable lifecycle
    # =========================================================================

    @classmethod
    @translate_storage_errors
    def cancel_payable(
        cls,
        tenant_id: uuid.UUID,
        payable_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
    ) -> Payable:
        """
        Cancel a pending payable.

        Raises:
            PayableNotFound: Unknown payable (or another tenant's)
            ConflictError: Payable has active payments
            InvalidStateTransitionError: Payable is not pendente
        """
        with ledger_lock("payable", payable_id):
            with cls.atomic():
                payable = cls._lock_payable(tenant_id, payable_id)
                if payable.payments.active().exists():
                    raise ConflictError(
                        f"Payable {payable_id} has active payments",
                        error_code="PAYABLE_HAS_PAYMENTS",
                        details={"payable_id": str(payable_id)},
                    )

                before = audit.snapshot(payable)
                try:
                    payable.cancel(actor_id)
                except TransitionNotAllowed as exc:
                    raise InvalidStateTransitionError(
                        f"Cannot cancel payable from '{payable.status}'",
                        details={
                            "payable_id": str(payable_id),
                            "current_state": payable.status,
                            "transition": "cancel",
                        },
                    ) from exc
                payable.save()
                audit.record(
                    AuditAction.UPDATE, payable, old_data=before, actor_id=actor_id
                )

        cls.get_logger().info(
            "Payable cancelled",
            extra={"tenant_id": str(tenant_id), "payable_id": str(payable_id)},
        )
        return payable

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def remaining_balance(cls, tenant_id: uuid.UUID, payable_id: uuid.UUID) -> Decimal:
        """amount_to_pay minus active payments, read fresh from the database."""
        payable = cls._get_payable(tenant_id, payable_id)
        return payable.remaining_balance

    @classmethod
    def payment_history(
        cls,
        tenant_id: uuid.UUID,
        payable_id: uuid.UUID,
    ) -> list[Payment]:
        """All payments of a payable, reversed ones included, newest first."""
        payable = cls._get_payable(tenant_id, payable_id)
        return list(
            Payment.objects.for_tenant(tenant_id)
            .filter(payable=payable)
            .select_related("reversal_revenue")
            .order_by("-payment_date", "-created_at")
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _get_payable(cls, tenant_id: uuid.UUID, payable_id: uuid.UUID) -> Payable:
        payable = Payable.objects.for_tenant(tenant_id).get_or_none(id=payable_id)
        if payable is None:
            raise PayableNotFound(
                f"Payable {payable_id} not found",
                details={"payable_id": str(payable_id)},
            )
        return payable

    @classmethod
    def _lock_payable(cls, tenant_id: uuid.UUID, payable_id: uuid.UUID) -> Payable:
        payable = (
            Payable.objects.for_tenant(tenant_id)
            .select_for_update()
            .get_or_none(id=payable_id)
        )
        if payable is None:
            raise PayableNotFound(
                f"Payable {payable_id} not found",
                details={"payable_id": str(payable_id)},
            )
        return payable

    @classmethod
    def _sync_status(
        cls,
        payable: Payable,
        paid_total: Decimal,
        actor_id: uuid.UUID | None,
    ) -> None:
        before = audit.snapshot(payable)
        previous_status = payable.status
        payable.sync_payment_status(paid_total)
        payable.save()
        audit.record(AuditAction.UPDATE, payable, old_data=before, actor_id=actor_id)

        if payable.status != previous_status:
            cls.get_logger().info(
                "Payable status changed",
                extra={
                    "payable_id": str(payable.id),
                    "from_status": previous_status,
                    "to_status": payable.status,
                    "paid_total": str(paid_total),
                },
            )


# Module-level singleton, mirrors the class-level API
payable_ledger = PayableLedger
