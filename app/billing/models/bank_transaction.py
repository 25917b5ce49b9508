"""
BankTransaction model: one imported bank-statement movement.

Rows are produced upstream by the OFX/CSV importers (which also suppress
duplicates by content hash). The ledger reads them for matching and only
touches the reconciliation columns.

Usage:
    from billing.models import BankTransaction

    txn = BankTransaction.objects.for_tenant(tenant_id).pending().debits()
    txn.reconcile(ReconciledWithType.PAYABLE, payable.id, actor_id)
    txn.save()
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from billing.models.base import money_field
from billing.state_machines import (
    BankTransactionStatus,
    ReconciledWithType,
    TransactionType,
)
from core.managers import TenantQuerySet
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import TenantScopedModel


class BankTransactionQuerySet(TenantQuerySet):
    def pending(self) -> BankTransactionQuerySet:
        return self.filter(status=BankTransactionStatus.PENDENTE)

    def debits(self) -> BankTransactionQuerySet:
        return self.filter(transaction_type=TransactionType.DEBIT)

    def credits(self) -> BankTransactionQuerySet:
        return self.filter(transaction_type=TransactionType.CREDIT)


class BankTransaction(UUIDPrimaryKeyMixin, TenantScopedModel):
    """
    Imported bank statement line.

    State Flow:
        PENDENTE -> CONCILIADO (confirmed match)
        CONCILIADO -> PENDENTE (reconciliation reversed)
        PENDENTE -> IGNORADO

    Fields:
        bank_id: Bank account the statement belongs to
        external_id: Identifier from the statement file (FITID)
        content_hash: Hash used upstream for duplicate suppression
        transaction_date: Posting date
        amount: Positive amount; direction is in transaction_type
        transaction_type: credit (money in) or debit (money out)
        description: Statement memo
        status: Reconciliation state
        reconciled_with_type / reconciled_with_id: Matched record
        processed_at / processed_by: Who confirmed or ignored it
    """

    bank_id = models.UUIDField(db_index=True)
    external_id = models.CharField(max_length=255, blank=True, default="")
    content_hash = models.CharField(max_length=64, db_index=True)
    transaction_date = models.DateField()
    amount = money_field("Absolute amount of the movement")
    transaction_type = models.CharField(
        max_length=10,
        choices=TransactionType.choices,
    )
    description = models.CharField(max_length=500, blank=True, default="")

    status = FSMField(
        default=BankTransactionStatus.PENDENTE,
        choices=BankTransactionStatus.choices,
        db_index=True,
        protected=True,
    )
    reconciled_with_type = models.CharField(
        max_length=20,
        choices=ReconciledWithType.choices,
        blank=True,
        default="",
    )
    reconciled_with_id = models.UUIDField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.UUIDField(null=True, blank=True)

    objects = models.Manager.from_queryset(BankTransactionQuerySet)()

    class Meta:
        ordering = ["-transaction_date", "-created_at"]
        verbose_name = "Bank transaction"
        verbose_name_plural = "Bank transactions"
        indexes = [
            models.Index(fields=["tenant_id", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "bank_id", "content_hash"],
                name="bank_transaction_unique_content",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="bank_transaction_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"BankTransaction({self.transaction_type}, {self.amount}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=BankTransactionStatus.PENDENTE,
        target=BankTransactionStatus.CONCILIADO,
    )
    def reconcile(
        self,
        with_type: str,
        with_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
    ):
        self.reconciled_with_type = with_type
        self.reconciled_with_id = with_id
        self.processed_at = timezone.now()
        self.processed_by = actor_id

    @transition(
        field=status,
        source=BankTransactionStatus.PENDENTE,
        target=BankTransactionStatus.IGNORADO,
    )
    def ignore(self, actor_id: uuid.UUID | None = None):
        self.processed_at = timezone.now()
        self.processed_by = actor_id

    @transition(
        field=status,
        source=BankTransactionStatus.CONCILIADO,
        target=BankTransactionStatus.PENDENTE,
    )
    def reopen(self):
        """Transition: CONCILIADO -> PENDENTE (reconciliation reversed)."""
        self.reconciled_with_type = ""
        self.reconciled_with_id = None
        self.processed_at = None
        self.processed_by = None

    @property
    def is_pending(self) -> bool:
        return self.status == BankTransactionStatus.PENDENTE

    @property
    def is_debit(self) -> bool:
        return self.transaction_type == TransactionType.DEBIT
