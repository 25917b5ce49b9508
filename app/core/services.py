"""
Service layer base classes.

Ledger operations live on BaseService subclasses as classmethods. They
raise typed errors from core.exceptions; callers that would rather get a
value back than catch can go through BaseService.run(), which wraps the
outcome in a ServiceResult.

Usage:
    from core.services import BaseService

    class PayableLedger(BaseService):
        @classmethod
        def apply_payment(cls, tenant_id, payable_id, amount, ...):
            with cls.atomic():
                payment = Payment.objects.create(...)
            cls.get_logger().info("Payment applied", extra={...})
            return payment

    result = PayableLedger.run(PayableLedger.reverse_payment, tenant_id, pid, "", None)
    if not result:
        result.error_code   # "REVERSAL_REASON_REQUIRED"
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: True when the call returned normally
        data: Return value on success
        error: Message on failure
        error_code: Machine-readable code on failure
        retryable: Whether repeating the whole call may succeed
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    retryable: bool = False

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        retryable: bool = False,
    ) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code, retryable=retryable)

    @classmethod
    def from_exception(cls, exc: Exception) -> ServiceResult[T]:
        """
        Failed result for an exception.

        Application errors keep their code and retryability; anything else
        is reported under its upper-cased class name.
        """
        if isinstance(exc, BaseApplicationError):
            return cls.failure(exc.message, exc.error_code, exc.is_retryable)
        return cls.failure(str(exc), exc.__class__.__name__.upper())

    def to_response(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.retryable:
            response["retryable"] = True
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless base for ledger services.

    Subclasses expose classmethods only. The tenant is always an explicit
    argument; nothing is read from request or thread-local state.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named "<module>.<ServiceClass>"."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the block in one database transaction.

        Example:
            with cls.atomic():
                allocation = InvoiceAllocation.objects.create(...)
                Payable.objects.create(allocation=allocation, ...)
        """
        with transaction.atomic():
            yield

    @classmethod
    def run(cls, func: Callable[..., T], *args: Any, **kwargs: Any) -> ServiceResult[T]:
        """
        Call func and wrap the outcome.

        Application errors become failed results and are logged at WARNING.
        Anything else is a bug and propagates.
        """
        try:
            return ServiceResult.success(func(*args, **kwargs))
        except BaseApplicationError as exc:
            cls.get_logger().log(logging.WARNING, f"{func.__name__}: {exc}")
            return ServiceResult.from_exception(exc)
