"""
Billing app: allocation and reconciliation ledger for medical invoices.

This app handles:
- Splitting an invoice's net value among doctors with fee and tax
  apportionment (allocations and payables)
- Partial payment and reversal against each payable
- Receipts from the paying hospital against each invoice
- Matching imported bank transactions to open payables and invoices

Every operation takes an explicit tenant_id and only ever sees rows of
that tenant.

Usage:
    from billing.services import AllocationEngine, BankReconciler, PayableLedger

    result = AllocationEngine.allocate(tenant_id, invoice_id, shares)
    PayableLedger.apply_payment(tenant_id, result.payables[0].id, ...)
    BankReconciler.suggest_for_transaction(tenant_id, transaction_id)
"""
