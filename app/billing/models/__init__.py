"""
Billing domain models.

This module contains all ledger models:
- Invoice: Issued billing document (nota fiscal) with taxes and receipts total
- InvoiceAllocation: One doctor's share of an invoice's net value
- Payable: Obligation to pay a doctor, 1:1 with an allocation
- Payment: Money paid against a payable (reversible once)
- Revenue: Counter-entry created when a payment is reversed
- InvoiceReceipt: Money received against an invoice (reversible once)
- ReceiptPaymentAdjustment: Recorded difference between expected and received
- BankTransaction: Imported bank statement line used for matching
"""

from billing.models.adjustment import ReceiptPaymentAdjustment
from billing.models.allocation import InvoiceAllocation
from billing.models.bank_transaction import BankTransaction
from billing.models.invoice import TAX_NAMES, Invoice
from billing.models.payable import Payable
from billing.models.payment import Payment
from billing.models.receipt import InvoiceReceipt
from billing.models.revenue import Revenue

__all__ = [
    "TAX_NAMES",
    "BankTransaction",
    "Invoice",
    "InvoiceAllocation",
    "InvoiceReceipt",
    "Payable",
    "Payment",
    "ReceiptPaymentAdjustment",
    "Revenue",
]
