"""
Concurrency control for ledger writes.

Three layers guard every balance-changing operation:

1. DistributedLock / ledger_lock
   A Redis key per record ("lock:payable:<id>", "lock:invoice:<id>",
   "lock:transaction:<id>") held for the whole write. Two payments on the
   same payable, or a payment racing its own reversal, are serialized here
   even when they arrive on different web workers.

2. check_version
   Rejects a write when the row changed since the caller read it
   (Invoice and Payable carry a version column bumped on every save).

3. translate_storage_errors
   Turns database OperationalError and lock-backend RedisError into the
   retryable StorageTimeout / StorageUnavailable errors.

Usage:
    from billing.locks import check_version, ledger_lock

    with ledger_lock("payable", payable_id):
        with transaction.atomic():
            payable = Payable.objects.for_tenant(t).select_for_update().get(...)

    with transaction.atomic():
        invoice = check_version(Invoice, invoice_id, expected_version=4)
"""

from __future__ import annotations

import functools
import time
import uuid
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import OperationalError, models, transaction

from django_redis import get_redis_connection
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from billing.exceptions import LockAcquisitionError, StaleRecordError
from core.exceptions import NotFoundError, StorageTimeout, StorageUnavailable

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)

# Delete the key only if it still carries our token
_RELEASE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

# Seconds between attempts while waiting for a busy lock
POLL_INTERVAL = 0.05


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Mutual exclusion on one ledger record across processes.

    The key expires after ttl seconds so a crashed worker cannot wedge a
    payable forever. Ownership is a random token: release() only deletes
    the key while it still holds our token, so a lock that expired and was
    taken by someone else is left alone.

    Example:
        with DistributedLock("payable:1b9d...", ttl=30, timeout=5.0):
            ...

        lock = DistributedLock("transaction:77af...", blocking=False)
        lock.acquire()   # LockAcquisitionError if someone else holds it

    Args:
        name: Record identifier, stored under "lock:<name>"
        ttl: Seconds before Redis drops the key on its own
        blocking: Wait for the lock instead of failing immediately
        timeout: Longest wait when blocking
    """

    def __init__(
        self,
        name: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{name}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_connection("default")
        return self._client

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Take the lock or raise LockAcquisitionError.

        The error is retryable: the caller may repeat the whole operation.
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + (self.timeout if self.blocking else 0)

        while True:
            if self.client.set(self.key, token, nx=True, ex=self.ttl):
                self._token = token
                return True
            if not self.blocking:
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    f"Could not acquire lock '{self.key}' within {self.timeout}s",
                    details={"key": self.key, "timeout": self.timeout},
                )
            time.sleep(POLL_INTERVAL)

    def release(self) -> bool:
        """Drop the lock if we own it. Returns False when there was nothing to drop."""
        if self._token is None:
            return False
        token, self._token = self._token, None
        return bool(self.client.eval(_RELEASE_IF_OWNER, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False


def ledger_lock(kind: str, pk: Any) -> DistributedLock:
    """
    Lock for one ledger record, configured from settings.

    kind is "payable", "invoice" or "transaction". TTL and wait come from
    BILLING_LOCK_TTL and BILLING_LOCK_TIMEOUT.
    """
    return DistributedLock(
        f"{kind}:{pk}",
        ttl=settings.BILLING_LOCK_TTL,
        timeout=settings.BILLING_LOCK_TIMEOUT,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(model_class: type[T], pk: Any, expected_version: int) -> T:
    """
    Return the row locked for update, provided its version still matches.

    Raises:
        NotFoundError: No row with that primary key
        StaleRecordError: The row was saved since expected_version was read
    """
    name = model_class.__name__
    with transaction.atomic():
        row = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if row is not None:
            return row

        current_version = (
            model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        )
        if current_version is None:
            raise NotFoundError(
                f"{name} {pk} not found",
                error_code=f"{name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )
        raise StaleRecordError(
            f"{name} {pk} changed since it was read "
            f"(version {expected_version}, now {current_version})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )


# =============================================================================
# Storage Error Translation
# =============================================================================


def translate_storage_errors(func: Callable[..., T]) -> Callable[..., T]:
    """
    Re-raise storage driver errors as retryable StorageErrors.

    Redis timeouts become StorageTimeout; other Redis failures and database
    OperationalError become StorageUnavailable.

    Example:
        class PayableLedger(BaseService):
            @classmethod
            @translate_storage_errors
            def apply_payment(cls, tenant_id, payable_id, ...):
                ...
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except RedisTimeoutError as exc:
            raise StorageTimeout(
                f"Lock backend timed out during {func.__name__}: {exc}",
                details={"operation": func.__name__, "backend": "redis"},
            ) from exc
        except RedisError as exc:
            raise StorageUnavailable(
                f"Lock backend unavailable during {func.__name__}: {exc}",
                details={"operation": func.__name__, "backend": "redis"},
            ) from exc
        except OperationalError as exc:
            raise StorageUnavailable(
                f"Storage unavailable during {func.__name__}: {exc}",
                details={"operation": func.__name__},
            ) from exc

    return wrapper
