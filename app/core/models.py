"""
Core base models shared by every ledger entity.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)
    TenantScopedModel: BaseModel plus an explicit tenant_id column and the
        tenant-aware default manager

For mixins (UUIDPrimaryKeyMixin, VersionedMixin), see core.model_mixins.

Usage:
    from core.models import TenantScopedModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Payment(UUIDPrimaryKeyMixin, TenantScopedModel):
        amount = models.DecimalField(max_digits=14, decimal_places=2)

    Payment.objects.for_tenant(tenant_id).filter(reversed_at__isnull=True)

Note:
    - Always list mixins before the base model in inheritance
    - Tenants never share rows; every read goes through for_tenant()
"""

from __future__ import annotations

from django.db import models

from core.managers import TenantManager


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Automatically set when the object is first created
        updated_at: Automatically updated whenever the object is saved
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Default string representation using primary key."""
        return f"{self.__class__.__name__}(id={self.pk})"


class TenantScopedModel(BaseModel):
    """
    Abstract base for rows owned by exactly one tenant.

    Fields:
        tenant_id: UUID of the owning tenant (indexed, required)

    The tenant is passed explicitly by every service call; nothing reads
    it from a session or thread-local.
    """

    tenant_id = models.UUIDField(
        db_index=True,
        help_text="Tenant that owns this record",
    )

    objects = TenantManager()

    class Meta(BaseModel.Meta):
        abstract = True
