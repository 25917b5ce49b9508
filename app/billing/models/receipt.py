"""
InvoiceReceipt model: money received from the payer of an Invoice.

Receipts follow the same one-way reversal rules as payments. The invoice's
total_received is always recomputed from its active receipts.
"""

from __future__ import annotations

from django.db import models

from billing.managers import ReversibleManager
from billing.models.base import ReversibleEntryMixin, money_field
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class InvoiceReceipt(UUIDPrimaryKeyMixin, ReversibleEntryMixin, TenantScopedModel):
    """
    A receipt recorded against an Invoice.

    Fields:
        invoice: Invoice being received (owner)
        bank_id: Bank account credited
        amount: Positive amount received
        receipt_date: Value date
        bank_transaction: Statement line the receipt was reconciled from
        adjustment_amount: received - pending, when a reason was given
        adjustment_reason: Why the received amount differs
        reversed_at / reversed_by / reversal_reason: One-way reversal
    """

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="receipts",
    )
    bank_id = models.UUIDField(help_text="Bank account credited")
    amount = money_field("Amount received")
    receipt_date = models.DateField(help_text="Value date of the receipt")
    bank_transaction = models.ForeignKey(
        "billing.BankTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receipts",
    )
    adjustment_amount = money_field(
        "Difference between received and pending amount",
        null=True,
        blank=True,
    )
    adjustment_reason = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_by = models.UUIDField(null=True, blank=True)

    objects = ReversibleManager()

    class Meta:
        ordering = ["-receipt_date", "-created_at"]
        verbose_name = "Invoice receipt"
        verbose_name_plural = "Invoice receipts"
        indexes = [
            models.Index(fields=["tenant_id", "invoice"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="receipt_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        state = "reversed" if self.is_reversed else "active"
        return f"InvoiceReceipt({self.id}, {self.amount}, {state})"
