"""
Shared infrastructure for the ledger apps. Nothing here knows about billing.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - TenantScopedModel: BaseModel plus tenant_id and the tenant manager

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic locking version column

Managers (import from core.managers):
    - TenantQuerySet: QuerySet with for_tenant() and get_or_none()
    - TenantManager: Manager using TenantQuerySet

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found (or owned by another tenant)
    - ConflictError: State conflicts (reversed twice, closed payable, ...)
    - StorageError: Transient storage failures (retryable)
        - StorageTimeout, StorageUnavailable
"""
