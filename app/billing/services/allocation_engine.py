"""
Allocation engine: splits an invoice's net value among doctors.

For each requested share the engine computes the allocated net value, the
proportional part of every withheld tax, the administration fee and the
amount to pay, then writes one InvoiceAllocation and one Payable per share
in a single transaction.

ISS rule:
    ISS is deducted from amount_to_pay only when the invoice's stored
    is_iss_retained flag is True. A null flag means not retained. The flag
    is never re-derived from the ISS percentage or value.

Usage:
    from billing.services import AllocationEngine
    from billing.types import AllocationShare

    result = AllocationEngine.allocate(
        tenant_id=tenant_id,
        invoice_id=invoice.id,
        shares=[
            AllocationShare(doctor_id=a_id, percentage=Decimal("60"),
                            admin_fee_percentage=Decimal("10")),
            AllocationShare(doctor_id=b_id, percentage=Decimal("40"),
                            admin_fee_percentage=Decimal("10")),
        ],
        actor_id=user_id,
    )
    result.payables[0].amount_to_pay   # Decimal("5100.00") for scenario net=10000, ISS=500

    # Same numbers without writing anything
    lines = AllocationEngine.preview(invoice, shares)
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from billing.audit import AuditAction, audit
from billing.exceptions import (
    AllocationLocked,
    AllocationOverflow,
    InvalidShareFraction,
    InvoiceAlreadyCancelled,
    InvoiceNotFound,
)
from billing.locks import check_version, ledger_lock, translate_storage_errors
from billing.models import TAX_NAMES, Invoice, InvoiceAllocation, Payable, Payment
from billing.money import EPSILON, ZERO, quantize, to_decimal
from billing.types import AllocationLine, AllocationResult, AllocationShare, AllocationSummary
from core.exceptions import ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Constants
# =============================================================================

HUNDRED = Decimal("100")

# share_fraction column precision
FRACTION_PLACES = Decimal("0.00000001")


def _spread(total: Decimal, before: Decimal, fraction: Decimal) -> Decimal:
    """Cents of total falling between cumulative fractions before and before + fraction."""
    return quantize(total * (before + fraction)) - quantize(total * before)


class AllocationEngine(BaseService):
    """
    Service computing and persisting invoice allocations.

    Guarantees:
        - Sum of allocated_net_value never exceeds net_value + 0.01
        - Each allocation's proportional taxes are invoice tax * fraction to the cent
        - Shares covering the whole invoice add up to its net value and taxes exactly
        - Allocations and payables are written together or not at all
        - preview() performs no writes, so abandoning a request has no effect
    """

    # =========================================================================
    # Computation (no side effects)
    # =========================================================================

    @classmethod
    def preview(
        cls,
        invoice: Invoice,
        shares: Sequence[AllocationShare],
    ) -> list[AllocationLine]:
        """
        Compute allocation lines for an invoice without writing anything.

        Args:
            invoice: Invoice to split
            shares: Requested shares

        Returns:
            One AllocationLine per share, in order

        Raises:
            ValidationError: If shares is empty
            InvalidShareFraction: If a share is malformed or out of range
        """
        if not shares:
            raise ValidationError(
                "At least one share is required",
                error_code="EMPTY_SHARES",
                details={"invoice_id": str(invoice.id)},
            )
        net_value = Decimal(invoice.net_value)
        taxes = {tax: Decimal(invoice.tax_value(tax)) for tax in TAX_NAMES}

        # Cents are rounded on the running total, so shares covering the
        # whole invoice add up to its net value and taxes exactly
        lines = []
        percentage_before = ZERO
        fraction_before = ZERO
        for share in shares:
            fraction, allocated = cls._resolve_share(share, net_value)
            if share.percentage is not None:
                allocated = _spread(net_value, percentage_before, fraction)
                percentage_before += fraction
            proportional_taxes = {
                tax: _spread(total, fraction_before, fraction)
                for tax, total in taxes.items()
            }
            fraction_before += fraction
            lines.append(
                cls._compute_line(
                    invoice, share, fraction, allocated, proportional_taxes
                )
            )
        return lines

    @classmethod
    def _compute_line(
        cls,
        invoice: Invoice,
        share: AllocationShare,
        fraction: Decimal,
        allocated: Decimal,
        proportional_taxes: dict[str, Decimal],
    ) -> AllocationLine:
        admin_fee_percentage = cls._ratio(
            share.admin_fee_percentage, "admin_fee_percentage"
        )
        if admin_fee_percentage < 0 or admin_fee_percentage > HUNDRED:
            raise InvalidShareFraction(
                "Admin fee percentage must be between 0 and 100",
                details={
                    "doctor_id": str(share.doctor_id),
                    "admin_fee_percentage": str(admin_fee_percentage),
                },
            )

        admin_fee = quantize(allocated * admin_fee_percentage / HUNDRED)
        deductions = proportional_taxes["iss"] if invoice.iss_retained else ZERO
        amount_to_pay = quantize(allocated - admin_fee - deductions)
        if amount_to_pay < ZERO:
            raise InvalidShareFraction(
                f"Admin fee {admin_fee} and deductions {deductions} exceed "
                f"the allocated {allocated}",
                details={
                    "doctor_id": str(share.doctor_id),
                    "allocated_net_value": str(allocated),
                    "admin_fee": str(admin_fee),
                    "proportional_deductions": str(deductions),
                },
            )

        return AllocationLine(
            doctor_id=share.doctor_id,
            doctor_name=share.doctor_name,
            share_fraction=fraction,
            allocated_net_value=allocated,
            admin_fee_percentage=admin_fee_percentage,
            admin_fee=admin_fee,
            proportional_taxes=proportional_taxes,
            proportional_deductions=deductions,
            amount_to_pay=amount_to_pay,
        )

    @classmethod
    def _resolve_share(
        cls,
        share: AllocationShare,
        net_value: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """Return (share_fraction, allocated_net_value) for one share."""
        details = {"doctor_id": str(share.doctor_id)}
        has_percentage = share.percentage is not None
        has_fixed = share.fixed_amount is not None
        if has_percentage == has_fixed:
            raise InvalidShareFraction(
                "Exactly one of percentage or fixed_amount is required",
                details=details,
            )

        if has_percentage:
            percentage = cls._ratio(share.percentage, "percentage")
            fraction = percentage / HUNDRED
            allocated = quantize(net_value * fraction)
        else:
            allocated = to_decimal(share.fixed_amount, "fixed_amount")
            if net_value <= ZERO:
                raise InvalidShareFraction(
                    "Cannot allocate a fixed amount of an invoice with no net value",
                    details=details,
                )
            fraction = (allocated / net_value).quantize(FRACTION_PLACES)

        if fraction <= 0 or fraction > 1:
            raise InvalidShareFraction(
                f"Share fraction {fraction} is outside (0, 1]",
                details={**details, "share_fraction": str(fraction)},
            )
        return fraction, allocated

    @staticmethod
    def _ratio(value: Any, field: str) -> Decimal:
        """Parse a percentage without rounding it to cents."""
        if isinstance(value, float):
            value = str(value)
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise InvalidShareFraction(
                f"Invalid {field}: {value!r}",
                details={field: str(value)},
            ) from exc
        if not result.is_finite():
            raise InvalidShareFraction(
                f"Invalid {field}: {value!r}",
                details={field: str(value)},
            )
        return result

    # =========================================================================
    # Persistence
    # =========================================================================

    @classmethod
    @translate_storage_errors
    def allocate(
        cls,
        tenant_id: uuid.UUID,
        invoice_id: uuid.UUID,
        shares: Sequence[AllocationShare],
        actor_id: uuid.UUID | None = None,
        replace: bool = False,
        expected_version: int | None = None,
    ) -> AllocationResult:
        """
        Split an invoice among doctors and create their payables.

        Args:
            tenant_id: Owning tenant
            invoice_id: Invoice to allocate
            shares: Requested shares
            actor_id: User finalizing the allocation
            replace: Delete the invoice's current allocations and payables
                first (re-allocation); refused once any payment exists
            expected_version: Invoice version the caller based the shares on;
                when given, a newer invoice raises StaleRecordError

        Returns:
            AllocationResult with the created allocations and payables

        Raises:
            InvoiceNotFound: Unknown invoice (or another tenant's)
            InvoiceAlreadyCancelled: Invoice is cancelled
            InvalidShareFraction: Malformed share
            AllocationOverflow: Shares exceed the invoice net value
            AllocationLocked: replace=True but payments already exist
            StaleRecordError: Invoice changed since expected_version
            LockAcquisitionError: Invoice lock busy (retryable)
        """
        cls.get_logger().info(
            "Starting invoice allocation",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice_id),
                "share_count": len(shares),
                "replace": replace,
            },
        )

        with ledger_lock("invoice", invoice_id):
            with cls.atomic():
                invoice = cls._lock_invoice(tenant_id, invoice_id)
                if expected_version is not None:
                    check_version(Invoice, invoice.pk, expected_version)
                if invoice.is_cancelled:
                    raise InvoiceAlreadyCancelled(
                        f"Invoice {invoice.invoice_number} is cancelled",
                        details={"invoice_id": str(invoice_id)},
                    )

                lines = cls.preview(invoice, shares)
                existing = InvoiceAllocation.objects.for_tenant(tenant_id).filter(
                    invoice=invoice
                )
                already_allocated = (
                    ZERO
                    if replace
                    else sum((a.allocated_net_value for a in existing), ZERO)
                )
                requested = sum((line.allocated_net_value for line in lines), ZERO)

                if already_allocated + requested > Decimal(invoice.net_value) + EPSILON:
                    raise AllocationOverflow(
                        f"Allocating {requested} exceeds invoice net value "
                        f"{invoice.net_value} (already allocated {already_allocated})",
                        details={
                            "invoice_id": str(invoice_id),
                            "net_value": str(invoice.net_value),
                            "already_allocated": str(already_allocated),
                            "requested": str(requested),
                        },
                    )

                if replace:
                    cls._delete_existing(tenant_id, invoice, actor_id)

                allocations = []
                payables = []
                for line in lines:
                    allocation, payable = cls._create_rows(
                        tenant_id, invoice, line, actor_id
                    )
                    allocations.append(allocation)
                    payables.append(payable)

        cls.get_logger().info(
            "Invoice allocated",
            extra={
                "tenant_id": str(tenant_id),
                "invoice_id": str(invoice_id),
                "allocated": str(requested),
                "payable_ids": [str(p.id) for p in payables],
            },
        )
        return AllocationResult(allocations=allocations, payables=payables)

    @classmethod
    def _lock_invoice(cls, tenant_id: uuid.UUID, invoice_id: uuid.UUID) -> Invoice:
        invoice = (
            Invoice.objects.for_tenant(tenant_id)
            .select_for_update()
            .get_or_none(id=invoice_id)
        )
        if invoice is None:
            raise InvoiceNotFound(
                f"Invoice {invoice_id} not found",
                details={"invoice_id": str(invoice_id)},
            )
        return invoice

    @classmethod
    def _delete_existing(
        cls,
        tenant_id: uuid.UUID,
        invoice: Invoice,
        actor_id: uuid.UUID | None,
    ) -> None:
        """Remove current allocations and payables of an invoice."""
        # Reversed payments are kept for audit, so any payment row locks the split
        if Payment.objects.for_tenant(tenant_id).filter(payable__invoice=invoice).exists():
            raise AllocationLocked(
                f"Invoice {invoice.invoice_number} has payments; "
                "reverse and keep them or allocate the remainder instead",
                details={"invoice_id": str(invoice.id)},
            )

        payables = list(Payable.objects.for_tenant(tenant_id).filter(invoice=invoice))
        allocations = list(
            InvoiceAllocation.objects.for_tenant(tenant_id).filter(invoice=invoice)
        )
        for payable in payables:
            audit.record(AuditAction.DELETE, payable, actor_id=actor_id)
            payable.delete()
        for allocation in allocations:
            audit.record(AuditAction.DELETE, allocation, actor_id=actor_id)
            allocation.delete()

        cls.get_logger().info(
            "Existing allocations removed",
            extra={
                "invoice_id": str(invoice.id),
                "removed_allocations": len(allocations),
            },
        )

    @classmethod
    def _create_rows(
        cls,
        tenant_id: uuid.UUID,
        invoice: Invoice,
        line: AllocationLine,
        actor_id: uuid.UUID | None,
    ) -> tuple[InvoiceAllocation, Payable]:
        allocation = InvoiceAllocation.objects.create(
            tenant_id=tenant_id,
            invoice=invoice,
            doctor_id=line.doctor_id,
            doctor_name=line.doctor_name,
            share_fraction=line.share_fraction,
            allocated_net_value=line.allocated_net_value,
            admin_fee_percentage=line.admin_fee_percentage,
            admin_fee=line.admin_fee,
            proportional_iss=line.proportional("iss"),
            proportional_irrf=line.proportional("irrf"),
            proportional_inss=line.proportional("inss"),
            proportional_csll=line.proportional("csll"),
            proportional_pis=line.proportional("pis"),
            proportional_cofins=line.proportional("cofins"),
            proportional_deductions=line.proportional_deductions,
            amount_to_pay=line.amount_to_pay,
            created_by=actor_id,
        )
        audit.record(AuditAction.INSERT, allocation, actor_id=actor_id)

        payable = Payable.objects.create(
            tenant_id=tenant_id,
            invoice=invoice,
            allocation=allocation,
            doctor_id=line.doctor_id,
            doctor_name=line.doctor_name,
            allocated_net_value=line.allocated_net_value,
            admin_fee=line.admin_fee,
            proportional_iss=line.proportional("iss"),
            proportional_deductions=line.proportional_deductions,
            amount_to_pay=line.amount_to_pay,
            expected_payment_date=invoice.expected_receipt_date,
            created_by=actor_id,
        )
        audit.record(AuditAction.INSERT, payable, actor_id=actor_id)
        return allocation, payable

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def allocation_summary(
        cls,
        tenant_id: uuid.UUID,
        invoice_id: uuid.UUID,
    ) -> AllocationSummary:
        """
        Allocated vs unallocated net value for one invoice.

        Raises:
            InvoiceNotFound: Unknown invoice (or another tenant's)
        """
        invoice = Invoice.objects.for_tenant(tenant_id).get_or_none(id=invoice_id)
        if invoice is None:
            raise InvoiceNotFound(
                f"Invoice {invoice_id} not found",
                details={"invoice_id": str(invoice_id)},
            )
        allocations = list(
            InvoiceAllocation.objects.for_tenant(tenant_id).filter(invoice=invoice)
        )
        total = sum((a.allocated_net_value for a in allocations), ZERO)
        return AllocationSummary(
            invoice_id=invoice.id,
            net_value=invoice.net_value,
            total_allocated=total,
            unallocated=quantize(Decimal(invoice.net_value) - total),
            allocation_count=len(allocations),
        )


# Module-level singleton, mirrors the class-level API
allocation_engine = AllocationEngine
