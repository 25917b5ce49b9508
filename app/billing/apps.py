"""
Billing app configuration.

This app provides the allocation and reconciliation ledger:
- Allocation of invoice net value among doctors (payables)
- Payment application and reversal against payables
- Invoice receipts
- Bank transaction matching and confirmation
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
