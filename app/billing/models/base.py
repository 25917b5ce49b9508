"""
Shared building blocks for billing models.

Helpers:
    money_field: DecimalField with 2 fraction digits

Mixins:
    ReversibleEntryMixin: One-way reversal columns for payments and receipts
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from billing.money import ZERO


def money_field(help_text: str, **kwargs) -> models.DecimalField:
    """DecimalField with the ledger's fixed precision (2 fraction digits)."""
    if not kwargs.get("null"):
        kwargs.setdefault("default", ZERO)
    return models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text=help_text,
        **kwargs,
    )


class ReversibleEntryMixin(models.Model):
    """
    Money movement that can be reversed exactly once.

    A reversed entry is kept for audit but excluded from every balance
    and status computation. There is no un-reversal.

    Fields:
        reversed_at: When the entry was reversed (null = active)
        reversed_by: User who reversed it
        reversal_reason: Mandatory free-text reason
    """

    reversed_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the entry was reversed (null = active)",
    )
    reversed_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who reversed the entry",
    )
    reversal_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the entry was reversed",
    )

    class Meta:
        abstract = True

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    def mark_reversed(self, reason: str, actor_id: uuid.UUID | None) -> None:
        """Stamp the reversal columns. Callers check is_reversed first."""
        self.reversed_at = timezone.now()
        self.reversed_by = actor_id
        self.reversal_reason = reason
