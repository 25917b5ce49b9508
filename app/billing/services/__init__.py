"""
Billing services.

Services hold the ledger's business logic. Each is a BaseService subclass
whose public methods are classmethods taking an explicit tenant_id.

Services:
    AllocationEngine: Split invoices into allocations and payables
    PayableLedger: Apply and reverse payments against payables
    InvoiceReceiptService: Record and reverse receipts, cancel invoices
    BankReconciler: Suggest, confirm and undo bank transaction matches

Usage:
    from billing.services import AllocationEngine, PayableLedger

    result = AllocationEngine.allocate(tenant_id, invoice_id, shares)
    PayableLedger.apply_payment(tenant_id, result.payables[0].id, ...)
"""

from billing.services.allocation_engine import AllocationEngine, allocation_engine
from billing.services.bank_reconciler import BankReconciler, bank_reconciler
from billing.services.invoice_receipts import InvoiceReceiptService, invoice_receipts
from billing.services.payable_ledger import PayableLedger, payable_ledger

__all__ = [
    "AllocationEngine",
    "BankReconciler",
    "InvoiceReceiptService",
    "PayableLedger",
    "allocation_engine",
    "bank_reconciler",
    "invoice_receipts",
    "payable_ledger",
]
