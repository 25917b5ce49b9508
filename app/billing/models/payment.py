"""
Payment model: money paid out to a doctor against a Payable.

Payments are never deleted or edited. A mistaken payment is reversed:
the reversal columns are stamped, the payment drops out of every balance,
and a Revenue counter-entry records the money coming back.
"""

from __future__ import annotations

from django.db import models

from billing.managers import ReversibleManager
from billing.models.base import ReversibleEntryMixin, money_field
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class Payment(UUIDPrimaryKeyMixin, ReversibleEntryMixin, TenantScopedModel):
    """
    A payment applied to a Payable.

    Fields:
        payable: Obligation being paid (owner)
        bank_id: Bank account the money left from
        amount: Positive amount paid
        payment_date: Value date of the payment
        notes: Free text
        bank_transaction: Statement line this payment was reconciled from
        reversed_at / reversed_by / reversal_reason: One-way reversal
    """

    payable = models.ForeignKey(
        "billing.Payable",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Payable this payment settles",
    )
    bank_id = models.UUIDField(help_text="Bank account the payment left from")
    amount = money_field("Amount paid")
    payment_date = models.DateField(help_text="Value date of the payment")
    notes = models.TextField(blank=True, default="")
    bank_transaction = models.ForeignKey(
        "billing.BankTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Bank statement line this payment was matched to",
    )
    created_by = models.UUIDField(null=True, blank=True)

    objects = ReversibleManager()

    class Meta:
        ordering = ["-payment_date", "-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["tenant_id", "payable"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        state = "reversed" if self.is_reversed else "active"
        return f"Payment({self.id}, {self.amount}, {state})"
