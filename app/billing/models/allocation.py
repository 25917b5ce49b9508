"""
InvoiceAllocation model: one doctor's share of an invoice's net value.

Each allocation stores the share fraction, the allocated net value, the
admin fee and the proportional part of every tax withheld on the invoice.
Every allocation has exactly one Payable (billing.models.Payable).
"""

from __future__ import annotations

from django.db import models

from billing.models.base import money_field
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class InvoiceAllocation(UUIDPrimaryKeyMixin, TenantScopedModel):
    """
    Split of one invoice's net value assigned to one doctor.

    Invariants:
        sum(allocated_net_value) over an invoice <= invoice.net_value (+0.01)
        proportional_<tax> = invoice.<tax>_value * share_fraction

    Fields:
        invoice: Allocated invoice
        doctor_id / doctor_name: Payee
        share_fraction: Fraction of net value in (0, 1]
        allocated_net_value: net_value * share_fraction
        admin_fee_percentage / admin_fee: Group's administration fee
        proportional_<tax>: Apportioned tax values
        proportional_deductions: Taxes deducted from the doctor's pay
        amount_to_pay: allocated_net_value - admin_fee - proportional_deductions
    """

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="allocations",
        help_text="Invoice being split",
    )

    doctor_id = models.UUIDField(
        db_index=True,
        help_text="Doctor receiving this share",
    )
    doctor_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Doctor name at allocation time",
    )

    share_fraction = models.DecimalField(
        max_digits=10,
        decimal_places=8,
        help_text="Fraction of the invoice net value, in (0, 1]",
    )
    allocated_net_value = money_field("Net value allocated to the doctor")

    admin_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=0,
        help_text="Administration fee rate, 0-100",
    )
    admin_fee = money_field("Administration fee withheld from the share")

    proportional_iss = money_field("ISS apportioned to this share")
    proportional_irrf = money_field("IRRF apportioned to this share")
    proportional_inss = money_field("INSS apportioned to this share")
    proportional_csll = money_field("CSLL apportioned to this share")
    proportional_pis = money_field("PIS apportioned to this share")
    proportional_cofins = money_field("COFINS apportioned to this share")
    proportional_deductions = money_field("Taxes deducted from amount_to_pay")

    amount_to_pay = money_field("Amount owed to the doctor")

    created_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who finalized the allocation",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Invoice allocation"
        verbose_name_plural = "Invoice allocations"
        indexes = [
            models.Index(fields=["tenant_id", "invoice"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(share_fraction__gt=0)
                & models.Q(share_fraction__lte=1),
                name="allocation_share_fraction_range",
            ),
        ]

    def __str__(self) -> str:
        return f"InvoiceAllocation({self.doctor_name or self.doctor_id}, {self.allocated_net_value})"

    def proportional_tax(self, tax: str):
        """Apportioned value for one of billing.models.invoice.TAX_NAMES."""
        return getattr(self, f"proportional_{tax}")
