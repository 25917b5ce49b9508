"""
ReceiptPaymentAdjustment model.

Records the difference when a confirmed receipt (or payment) does not
match the pending balance and the user gave a reason for it, e.g. a
hospital paying a glosa-reduced amount.
"""

from __future__ import annotations

from django.db import models

from billing.models.base import money_field
from billing.state_machines import AdjustmentType
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class ReceiptPaymentAdjustment(UUIDPrimaryKeyMixin, TenantScopedModel):
    """
    Difference between expected and actual money movement.

    adjustment_amount = received_amount - expected_amount (negative when
    less than expected arrived).
    """

    adjustment_type = models.CharField(
        max_length=20,
        choices=AdjustmentType.choices,
        default=AdjustmentType.RECEBIMENTO,
    )
    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="adjustments",
    )
    receipt = models.ForeignKey(
        "billing.InvoiceReceipt",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="adjustments",
    )
    bank_id = models.UUIDField(null=True, blank=True)
    bank_transaction = models.ForeignKey(
        "billing.BankTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="adjustments",
    )
    expected_amount = money_field("Pending balance at confirmation time")
    received_amount = money_field("Amount actually received")
    adjustment_amount = money_field("received_amount - expected_amount")
    adjustment_date = models.DateField()
    reason = models.TextField()
    notes = models.TextField(blank=True, default="")
    created_by = models.UUIDField(null=True, blank=True)

    class Meta:
        ordering = ["-adjustment_date", "-created_at"]
        verbose_name = "Receipt/payment adjustment"
        verbose_name_plural = "Receipt/payment adjustments"

    def __str__(self) -> str:
        return f"ReceiptPaymentAdjustment({self.adjustment_type}, {self.adjustment_amount})"
