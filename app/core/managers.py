"""
Custom QuerySet and Manager classes for tenant scoping.

Manager vs QuerySet:
    - QuerySet: Defines chainable methods (for_tenant, ...)
    - Manager: Attaches QuerySet to model

Usage:
    from core.managers import TenantManager

    class Invoice(TenantScopedModel):
        objects = TenantManager()

    Invoice.objects.for_tenant(tenant_id).filter(status="pendente")
    Invoice.objects.for_tenant(tenant_id).get_or_none(id=invoice_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    import uuid
    from typing import Any


class TenantQuerySet(models.QuerySet):
    """
    QuerySet with tenant filtering helpers.

    Methods:
        for_tenant(): Restrict to one tenant's rows
        get_or_none(): Single-row lookup returning None when absent
    """

    def for_tenant(self, tenant_id: uuid.UUID | str) -> TenantQuerySet:
        """
        Restrict the queryset to a single tenant.

        Args:
            tenant_id: UUID of the tenant

        Returns:
            Filtered queryset
        """
        if tenant_id is None:
            raise ValueError("tenant_id is required")
        return self.filter(tenant_id=tenant_id)

    def get_or_none(self, **kwargs: Any) -> models.Model | None:
        """Return the single matching row or None."""
        try:
            return self.get(**kwargs)
        except self.model.DoesNotExist:
            return None


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    """Default manager for tenant-scoped models."""

    pass
