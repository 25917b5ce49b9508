"""
Billing admin configuration.

The admin is read-mostly: invoices can be inspected and their descriptive
fields edited, while every money movement (payments, receipts, revenues,
adjustments) is created and reversed only through the service layer.
Status fields are managed by the FSM and are always read-only here.
"""

from django.contrib import admin, messages

from billing.models import (
    BankTransaction,
    Invoice,
    InvoiceAllocation,
    InvoiceReceipt,
    Payable,
    Payment,
    ReceiptPaymentAdjustment,
    Revenue,
)
from billing.services import BankReconciler

__all__ = [
    "InvoiceAdmin",
    "InvoiceAllocationAdmin",
    "PayableAdmin",
    "PaymentAdmin",
    "InvoiceReceiptAdmin",
    "RevenueAdmin",
    "ReceiptPaymentAdjustmentAdmin",
    "BankTransactionAdmin",
]


class LedgerEntryAdmin(admin.ModelAdmin):
    """Base admin for append-only rows: no add, no change, no delete."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete (audit trail)."""
        return False


class InvoiceAllocationInline(admin.TabularInline):
    """Inline display of allocations for an invoice."""

    model = InvoiceAllocation
    extra = 0
    fields = [
        "doctor_name",
        "share_fraction",
        "allocated_net_value",
        "admin_fee",
        "proportional_deductions",
        "amount_to_pay",
    ]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    """
    Admin configuration for Invoice.

    Values that drive allocations and receipts are read-only; allocate
    and receive through the service layer.
    """

    list_display = [
        "invoice_number",
        "hospital_name",
        "company_name",
        "net_value",
        "total_received",
        "status",
        "expected_receipt_date",
    ]
    list_filter = ["status", "is_iss_retained", "issue_date"]
    search_fields = ["invoice_number", "hospital_name", "company_name", "payer_tax_id"]
    readonly_fields = [
        "id",
        "tenant_id",
        "status",
        "total_received",
        "receipt_date",
        "bank_id",
        "version",
        "created_by",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "issue_date"
    ordering = ["-issue_date"]
    inlines = [InvoiceAllocationInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "tenant_id", "invoice_number", "status"),
            },
        ),
        (
            "Parties",
            {
                "fields": ("company_name", "hospital_name", "payer_tax_id"),
            },
        ),
        (
            "Values",
            {
                "fields": (
                    "gross_value",
                    "total_deductions",
                    "net_value",
                    "iss_percentage",
                    "is_iss_retained",
                ),
            },
        ),
        (
            "Taxes",
            {
                "fields": (
                    "iss_value",
                    "irrf_value",
                    "inss_value",
                    "csll_value",
                    "pis_value",
                    "cofins_value",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Receipt",
            {
                "fields": (
                    "issue_date",
                    "expected_receipt_date",
                    "total_received",
                    "receipt_date",
                    "bank_id",
                ),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("version", "created_by", "created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Invoices are cancelled, never deleted."""
        return False


@admin.register(InvoiceAllocation)
class InvoiceAllocationAdmin(LedgerEntryAdmin):
    list_display = [
        "invoice",
        "doctor_name",
        "share_fraction",
        "allocated_net_value",
        "amount_to_pay",
        "created_at",
    ]
    search_fields = ["doctor_name", "invoice__invoice_number"]
    ordering = ["-created_at"]


@admin.register(Payable)
class PayableAdmin(LedgerEntryAdmin):
    """
    Admin configuration for Payable.

    Balance and status are derived from payments; nothing is editable.
    """

    list_display = [
        "id",
        "doctor_name",
        "invoice",
        "amount_to_pay",
        "remaining_balance_display",
        "status",
        "expected_payment_date",
    ]
    list_filter = ["status", "expected_payment_date"]
    search_fields = ["id", "doctor_name", "invoice__invoice_number"]
    ordering = ["expected_payment_date"]

    def remaining_balance_display(self, obj: Payable) -> str:
        return f"R$ {obj.remaining_balance:.2f}"

    remaining_balance_display.short_description = "Remaining"


@admin.register(Payment)
class PaymentAdmin(LedgerEntryAdmin):
    list_display = [
        "id",
        "payable",
        "amount",
        "payment_date",
        "bank_id",
        "reversed_at",
    ]
    list_filter = ["payment_date", "reversed_at"]
    search_fields = ["id", "payable__doctor_name", "reversal_reason"]
    date_hierarchy = "payment_date"
    ordering = ["-payment_date"]


@admin.register(InvoiceReceipt)
class InvoiceReceiptAdmin(LedgerEntryAdmin):
    list_display = [
        "id",
        "invoice",
        "amount",
        "adjustment_amount",
        "receipt_date",
        "reversed_at",
    ]
    list_filter = ["receipt_date", "reversed_at"]
    search_fields = ["id", "invoice__invoice_number"]
    date_hierarchy = "receipt_date"
    ordering = ["-receipt_date"]


@admin.register(Revenue)
class RevenueAdmin(LedgerEntryAdmin):
    list_display = ["id", "revenue_type", "amount", "revenue_date", "source_payment"]
    list_filter = ["revenue_type", "revenue_date"]
    ordering = ["-revenue_date"]


@admin.register(ReceiptPaymentAdjustment)
class ReceiptPaymentAdjustmentAdmin(LedgerEntryAdmin):
    list_display = [
        "id",
        "adjustment_type",
        "invoice",
        "expected_amount",
        "received_amount",
        "adjustment_amount",
        "adjustment_date",
    ]
    list_filter = ["adjustment_type", "adjustment_date"]
    search_fields = ["reason", "invoice__invoice_number"]
    ordering = ["-adjustment_date"]


@admin.register(BankTransaction)
class BankTransactionAdmin(LedgerEntryAdmin):
    """
    Admin configuration for BankTransaction.

    Rows come from the statement importers; reconcile through
    BankReconciler. The ignore action goes through the service too, so it
    takes the transaction lock and refuses anything no longer pending.
    """

    list_display = [
        "transaction_date",
        "transaction_type",
        "amount",
        "description",
        "status",
        "reconciled_with_type",
    ]
    list_filter = ["status", "transaction_type", "transaction_date"]
    search_fields = ["description", "external_id"]
    date_hierarchy = "transaction_date"
    ordering = ["-transaction_date"]
    actions = ["ignore_selected"]

    @admin.action(description="Ignore selected pending transactions")
    def ignore_selected(self, request, queryset):
        ignored = 0
        for bank_transaction in queryset:
            result = BankReconciler.run(
                BankReconciler.ignore_transaction,
                bank_transaction.tenant_id,
                bank_transaction.id,
            )
            if result:
                ignored += 1
            else:
                self.message_user(
                    request,
                    f"{bank_transaction.description or bank_transaction.id}: {result.error}",
                    level=messages.WARNING,
                )
        self.message_user(request, f"Ignored {ignored} bank transactions.")
