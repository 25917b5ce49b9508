"""
Revenue model: money flowing into a bank account outside invoice receipts.

The ledger creates one Revenue of type ESTORNO_PAGAMENTO for every
reversed Payment, tagged to the payment's bank account.
"""

from __future__ import annotations

from django.db import models

from billing.models.base import money_field
from billing.state_machines import RevenueType
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class Revenue(UUIDPrimaryKeyMixin, TenantScopedModel):
    """
    Revenue entry (counter-entry for reversed payments).

    Fields:
        bank_id: Bank account credited
        amount: Positive amount
        revenue_date: Date of the entry
        revenue_type: RevenueType
        description: Human-readable description
        source_payment: Reversed payment this entry offsets (if any)
        created_by: User who caused the entry
    """

    bank_id = models.UUIDField(help_text="Bank account credited")
    amount = money_field("Revenue amount")
    revenue_date = models.DateField(help_text="Date of the revenue")
    revenue_type = models.CharField(
        max_length=30,
        choices=RevenueType.choices,
        default=RevenueType.OUTRAS,
        db_index=True,
    )
    description = models.CharField(max_length=255, blank=True, default="")
    source_payment = models.OneToOneField(
        "billing.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversal_revenue",
        help_text="Payment whose reversal produced this entry",
    )
    created_by = models.UUIDField(null=True, blank=True)

    class Meta:
        ordering = ["-revenue_date", "-created_at"]
        verbose_name = "Revenue"
        verbose_name_plural = "Revenues"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="revenue_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Revenue({self.revenue_type}, {self.amount})"
