"""
Tenant-scoped QuerySets for billing models.

Every query starts from for_tenant(); these QuerySets add the filters the
ledger repeats everywhere (active payments, open payables, invoices still
awaiting money).

Usage:
    Payment.objects.for_tenant(tenant_id).filter(payable=payable).active().total()
    Payable.objects.for_tenant(tenant_id).open()
    Invoice.objects.for_tenant(tenant_id).awaiting_receipt()
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Sum

from billing.money import ZERO, quantize
from billing.state_machines import InvoiceStatus, PayableStatus
from core.managers import TenantQuerySet


class ReversibleQuerySet(TenantQuerySet):
    """QuerySet for rows with one-way reversal (payments, receipts)."""

    def active(self) -> ReversibleQuerySet:
        """Rows that have not been reversed."""
        return self.filter(reversed_at__isnull=True)

    def reversed(self) -> ReversibleQuerySet:
        return self.filter(reversed_at__isnull=False)

    def total(self) -> Decimal:
        """Sum of amount over the queryset (0.00 when empty)."""
        result = self.aggregate(total=Sum("amount"))["total"]
        return quantize(result) if result is not None else ZERO


class PayableQuerySet(TenantQuerySet):
    def open(self) -> PayableQuerySet:
        """Payables that can still receive payments."""
        return self.filter(
            status__in=[PayableStatus.PENDENTE, PayableStatus.PARCIALMENTE_PAGO]
        )


class InvoiceQuerySet(TenantQuerySet):
    def awaiting_receipt(self) -> InvoiceQuerySet:
        """Invoices with money still expected from the payer."""
        return self.filter(
            status__in=[InvoiceStatus.PENDENTE, InvoiceStatus.PARCIALMENTE_RECEBIDO]
        )


ReversibleManager = models.Manager.from_queryset(ReversibleQuerySet)
PayableManager = models.Manager.from_queryset(PayableQuerySet)
InvoiceManager = models.Manager.from_queryset(InvoiceQuerySet)
