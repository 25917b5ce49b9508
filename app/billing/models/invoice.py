"""
Invoice model (nota fiscal) for issued billing documents.

An Invoice carries the gross value billed to a hospital/payer, the taxes
withheld, and the resulting net value that is later split among doctors
(InvoiceAllocation) and received from the payer (InvoiceReceipt).

Usage:
    from billing.models import Invoice
    from billing.state_machines import InvoiceStatus

    invoice = Invoice.objects.create(
        tenant_id=tenant_id,
        invoice_number="2024/0001",
        gross_value=Decimal("10500.00"),
        total_deductions=Decimal("500.00"),
        net_value=Decimal("10000.00"),
        iss_value=Decimal("500.00"),
        is_iss_retained=True,
    )

    # Status follows total_received; never assign it directly
    invoice.sync_receipt_status(total_received=Decimal("4000.00"))
    invoice.save()
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models

from django_fsm import FSMField, transition

from billing.managers import InvoiceManager
from billing.models.base import money_field
from billing.money import EPSILON, ZERO, amounts_match
from billing.state_machines import InvoiceStatus
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import TenantScopedModel

if TYPE_CHECKING:
    import datetime

# Taxes apportioned to allocations, in display order
TAX_NAMES = ("iss", "irrf", "inss", "csll", "pis", "cofins")


class Invoice(UUIDPrimaryKeyMixin, VersionedMixin, TenantScopedModel):
    """
    Issued billing document (nota fiscal).

    State Flow:
        PENDENTE -> PARCIALMENTE_RECEBIDO -> RECEBIDO
        (any receiving state) -> PENDENTE when receipts are reversed
        PENDENTE -> CANCELADO

    Fields:
        invoice_number: Document number shown to users
        company_name: Issuing company (the medical group)
        hospital_name: Paying hospital
        payer_tax_id: CNPJ of the paying hospital
        gross_value / total_deductions / net_value: Document totals
        <tax>_value: Withheld amount per tax (ISS, IRRF, INSS, CSLL, PIS, COFINS)
        iss_percentage: ISS rate printed on the document
        is_iss_retained: Tri-state flag; None is treated as not retained
        total_received: Sum of active receipts
        receipt_date: Date the invoice became fully received
        status: Current FSM state
    """

    # ==========================================================================
    # Identification
    # ==========================================================================

    invoice_number = models.CharField(
        max_length=60,
        db_index=True,
        help_text="Invoice (nota fiscal) number",
    )
    company_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Issuing company name",
    )
    hospital_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Paying hospital name",
    )
    payer_tax_id = models.CharField(
        max_length=18,
        blank=True,
        default="",
        help_text="CNPJ of the paying hospital",
    )
    issue_date = models.DateField(
        null=True,
        blank=True,
        help_text="Issue date of the document",
    )
    expected_receipt_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the payer is expected to pay",
    )

    # ==========================================================================
    # Values
    # ==========================================================================

    gross_value = money_field("Gross value billed")
    total_deductions = money_field("Sum of withheld taxes and other deductions")
    net_value = money_field("Net value (gross - deductions)")

    iss_value = money_field("ISS withheld")
    irrf_value = money_field("IRRF withheld")
    inss_value = money_field("INSS withheld")
    csll_value = money_field("CSLL withheld")
    pis_value = money_field("PIS withheld")
    cofins_value = money_field("COFINS withheld")

    iss_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="ISS rate as printed on the document",
    )
    is_iss_retained = models.BooleanField(
        null=True,
        blank=True,
        help_text="Whether ISS is retained by the payer (null = not retained)",
    )

    # ==========================================================================
    # Receipt tracking
    # ==========================================================================

    total_received = money_field("Sum of active receipts")
    receipt_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the invoice was fully received",
    )
    bank_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Bank account of the last receipt",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=InvoiceStatus.PENDENTE,
        choices=InvoiceStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the invoice (managed by FSM)",
    )

    created_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who registered the invoice",
    )

    objects = InvoiceManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        indexes = [
            models.Index(fields=["tenant_id", "status"]),
            models.Index(fields=["tenant_id", "invoice_number"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(net_value__gte=0),
                name="invoice_net_value_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Invoice({self.invoice_number}, {self.status}, {self.net_value})"

    def clean(self) -> None:
        """Validate net_value = gross_value - total_deductions (within a cent)."""
        super().clean()
        expected = Decimal(self.gross_value) - Decimal(self.total_deductions)
        if not amounts_match(expected, self.net_value):
            raise DjangoValidationError(
                {
                    "net_value": (
                        f"Net value {self.net_value} does not match gross "
                        f"{self.gross_value} minus deductions {self.total_deductions}"
                    )
                }
            )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    RECEIVING_STATES = [
        InvoiceStatus.PENDENTE,
        InvoiceStatus.PARCIALMENTE_RECEBIDO,
        InvoiceStatus.RECEBIDO,
    ]

    @transition(field=status, source=RECEIVING_STATES, target=InvoiceStatus.RECEBIDO)
    def mark_received(self, receipt_date: datetime.date | None = None):
        """Transition: any receiving state -> RECEBIDO."""
        if receipt_date is not None:
            self.receipt_date = receipt_date

    @transition(
        field=status,
        source=RECEIVING_STATES,
        target=InvoiceStatus.PARCIALMENTE_RECEBIDO,
    )
    def mark_partially_received(self):
        """Transition: any receiving state -> PARCIALMENTE_RECEBIDO."""
        self.receipt_date = None

    @transition(field=status, source=RECEIVING_STATES, target=InvoiceStatus.PENDENTE)
    def mark_pending(self):
        """Transition: any receiving state -> PENDENTE (all receipts reversed)."""
        self.receipt_date = None

    @transition(
        field=status,
        source=InvoiceStatus.PENDENTE,
        target=InvoiceStatus.CANCELADO,
    )
    def cancel(self):
        """Transition: PENDENTE -> CANCELADO. Terminal."""
        pass

    # ==========================================================================
    # Derived state
    # ==========================================================================

    def sync_receipt_status(
        self,
        total_received: Decimal,
        receipt_date: datetime.date | None = None,
    ) -> None:
        """
        Store total_received and move status to match it.

        RECEBIDO when total >= net - 0.01, PARCIALMENTE_RECEBIDO when
        anything is received, otherwise PENDENTE.
        """
        self.total_received = total_received
        if total_received > ZERO and self.is_fully_received:
            self.mark_received(receipt_date)
        elif total_received > ZERO:
            self.mark_partially_received()
        else:
            self.mark_pending()

    def tax_value(self, tax: str) -> Decimal:
        """Withheld value for one of TAX_NAMES."""
        return getattr(self, f"{tax}_value")

    @property
    def pending_balance(self) -> Decimal:
        """Net value still expected from the payer."""
        return Decimal(self.net_value) - Decimal(self.total_received)

    @property
    def is_fully_received(self) -> bool:
        return Decimal(self.total_received) >= Decimal(self.net_value) - EPSILON

    @property
    def iss_retained(self) -> bool:
        """The stored flag, with null read as not retained."""
        return self.is_iss_retained is True

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELADO
