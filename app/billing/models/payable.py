"""
Payable model (contas a pagar): what the group owes a doctor.

A Payable is created 1:1 from an InvoiceAllocation when the allocation is
finalized. Payments accumulate against it; its status is recomputed from
the active payments on every insert and reversal.

Usage:
    from billing.models import Payable

    payable = Payable.objects.for_tenant(tenant_id).get(id=payable_id)
    payable.remaining_balance            # derived from active payments
    payable.sync_payment_status(paid_total)
    payable.save()

Note:
    remaining_balance is never stored. It is amount_to_pay minus the sum
    of non-reversed payments, read from the database each time.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from billing.managers import PayableManager
from billing.models.base import money_field
from billing.money import ZERO, is_settled, outstanding_balance
from billing.state_machines import PayableStatus
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import TenantScopedModel


class Payable(UUIDPrimaryKeyMixin, VersionedMixin, TenantScopedModel):
    """
    Obligation to pay a doctor for one allocation.

    State Flow:
        PENDENTE -> PARCIALMENTE_PAGO -> PAGO
        PAGO/PARCIALMENTE_PAGO -> PENDENTE (payments reversed)
        PENDENTE -> CANCELADO

    Fields:
        invoice: Source invoice (lookup only)
        allocation: Source allocation (1:1)
        doctor_id / doctor_name: Payee
        allocated_net_value / admin_fee / proportional_iss /
            proportional_deductions: Copied from the allocation
        amount_to_pay: Amount owed
        expected_payment_date: Defaults to the invoice expected receipt date
        status: Current FSM state
        paid_at: Set on the transition into PAGO, cleared on the way out
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="payables",
        help_text="Invoice the obligation comes from",
    )
    allocation = models.OneToOneField(
        "billing.InvoiceAllocation",
        on_delete=models.CASCADE,
        related_name="payable",
        help_text="Allocation this payable was created from",
    )

    # ==========================================================================
    # Payee & Amounts
    # ==========================================================================

    doctor_id = models.UUIDField(db_index=True, help_text="Doctor to be paid")
    doctor_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Doctor name at allocation time",
    )

    allocated_net_value = money_field("Net value allocated to the doctor")
    admin_fee = money_field("Administration fee withheld")
    proportional_iss = money_field("ISS apportioned to this share")
    proportional_deductions = money_field("Taxes deducted from amount_to_pay")
    amount_to_pay = money_field("Amount owed to the doctor")

    expected_payment_date = models.DateField(
        null=True,
        blank=True,
        help_text="When payment is expected to go out",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayableStatus.PENDENTE,
        choices=PayableStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payable (managed by FSM)",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payable became fully paid",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.UUIDField(null=True, blank=True)

    created_by = models.UUIDField(null=True, blank=True)

    objects = PayableManager()

    class Meta:
        ordering = ["expected_payment_date", "created_at"]
        verbose_name = "Payable"
        verbose_name_plural = "Payables"
        indexes = [
            models.Index(fields=["tenant_id", "status"]),
            models.Index(fields=["tenant_id", "doctor_id"]),
        ]

    def __str__(self) -> str:
        return f"Payable({self.id}, {self.status}, {self.amount_to_pay})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    PAYABLE_STATES = [
        PayableStatus.PENDENTE,
        PayableStatus.PARCIALMENTE_PAGO,
        PayableStatus.PAGO,
    ]

    @transition(field=status, source=PAYABLE_STATES, target=PayableStatus.PAGO)
    def mark_paid(self):
        """
        Transition: any payable state -> PAGO.

        paid_at is stamped only when entering PAGO, not when a further
        payment lands on an already paid payable.
        """
        if self.paid_at is None:
            self.paid_at = timezone.now()

    @transition(
        field=status,
        source=PAYABLE_STATES,
        target=PayableStatus.PARCIALMENTE_PAGO,
    )
    def mark_partially_paid(self):
        self.paid_at = None

    @transition(field=status, source=PAYABLE_STATES, target=PayableStatus.PENDENTE)
    def mark_pending(self):
        self.paid_at = None

    @transition(
        field=status,
        source=PayableStatus.PENDENTE,
        target=PayableStatus.CANCELADO,
    )
    def cancel(self, actor_id=None):
        """Transition: PENDENTE -> CANCELADO. Terminal."""
        self.cancelled_at = timezone.now()
        self.cancelled_by = actor_id

    # ==========================================================================
    # Derived state
    # ==========================================================================

    def sync_payment_status(self, paid_total: Decimal) -> None:
        """
        Move status to match the sum of active payments.

        PAGO when the remaining balance is within a cent of zero (or
        negative), PARCIALMENTE_PAGO when something is paid, else PENDENTE.
        """
        remaining = outstanding_balance(self.amount_to_pay, [paid_total])
        if is_settled(remaining):
            self.mark_paid()
        elif paid_total > ZERO:
            self.mark_partially_paid()
        else:
            self.mark_pending()

    def active_paid_total(self) -> Decimal:
        """Sum of non-reversed payments, read from the database."""
        return self.payments.active().total()

    @property
    def remaining_balance(self) -> Decimal:
        """amount_to_pay minus active payments (may be negative)."""
        return outstanding_balance(self.amount_to_pay, [self.active_paid_total()])

    @property
    def is_cancelled(self) -> bool:
        return self.status == PayableStatus.CANCELADO

    @property
    def is_overpaid(self) -> bool:
        return self.remaining_balance < ZERO