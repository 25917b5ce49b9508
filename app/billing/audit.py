"""
Audit boundary for ledger writes.

Every create/update/delete on the audited billing models produces an
AuditEvent carrying before/after snapshots and the list of changed keys.
Events are handed to the configured emitter only after the surrounding
transaction commits, so rolled-back work never shows up in the audit log.
Storage and display of the log belong to the surrounding application.

Components:
    AuditEvent: Immutable event payload
    AuditEmitter: Protocol for anything with emit(event)
    LoggingAuditEmitter: Default emitter, logs to the "billing.audit" logger
    AuditRecorder: Snapshots rows and schedules emission on commit

Configuration:
    BILLING_AUDIT_EMITTER = "billing.audit.LoggingAuditEmitter"

Usage:
    from billing.audit import AuditAction, audit

    with transaction.atomic():
        before = audit.snapshot(payable)
        payable.mark_paid()
        payable.save()
        audit.record(AuditAction.UPDATE, payable, old_data=before, actor_id=actor_id)
    # emitter.emit(event) runs here, after COMMIT
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger("billing.audit")

# Keys never diffed (they change on every write or never change)
VOLATILE_KEYS = frozenset({"created_at", "updated_at", "tenant_id"})

# Keys stripped from both snapshots
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "secret",
        "api_key",
    }
)


class AuditAction(models.TextChoices):
    INSERT = "INSERT", "Insert"
    UPDATE = "UPDATE", "Update"
    DELETE = "DELETE", "Delete"


@dataclass(frozen=True)
class AuditEvent:
    """
    One audited write.

    Attributes:
        action: INSERT, UPDATE or DELETE
        table: Database table of the row
        record_id: Primary key of the row (as string)
        old_data: Snapshot before the write (None for INSERT)
        new_data: Snapshot after the write (None for DELETE)
        changed_fields: Sorted keys whose values differ between snapshots
        tenant_id: Owning tenant
        actor_id: User who caused the write (None for system actions)
        occurred_at: When the event was built
    """

    action: str
    table: str
    record_id: str
    old_data: dict[str, Any] | None
    new_data: dict[str, Any] | None
    changed_fields: list[str]
    tenant_id: str | None = None
    actor_id: str | None = None
    occurred_at: datetime.datetime = field(default_factory=timezone.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "table": self.table,
            "record_id": self.record_id,
            "old_data": self.old_data,
            "new_data": self.new_data,
            "changed_fields": list(self.changed_fields),
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


@runtime_checkable
class AuditEmitter(Protocol):
    """
    Protocol for audit sinks.

    Example:
        class ListEmitter:
            def __init__(self):
                self.events = []

            def emit(self, event):
                self.events.append(event)
    """

    def emit(self, event: AuditEvent) -> None:
        """Deliver one event."""
        ...


class LoggingAuditEmitter:
    """Default emitter: one INFO record per event on the billing.audit logger."""

    def emit(self, event: AuditEvent) -> None:
        logger.info(
            "%s %s %s",
            event.action,
            event.table,
            event.record_id,
            extra={"audit_event": event.to_dict()},
        )


# =============================================================================
# Snapshot helpers
# =============================================================================


def _plain(value: Any) -> Any:
    """Convert a field value to a JSON-friendly primitive."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


def changed_fields(
    old_data: dict[str, Any] | None,
    new_data: dict[str, Any] | None,
) -> list[str]:
    """
    Keys whose values differ between two snapshots.

    Keys present on only one side count as changed; volatile keys are
    never reported.
    """
    old_data = old_data or {}
    new_data = new_data or {}
    missing = object()
    keys = (set(old_data) | set(new_data)) - VOLATILE_KEYS
    return sorted(
        key
        for key in keys
        if old_data.get(key, missing) != new_data.get(key, missing)
    )


class AuditRecorder:
    """
    Builds AuditEvents from model instances and dispatches them on commit.

    The emitter is resolved from settings.BILLING_AUDIT_EMITTER on every
    call, so tests can swap it with override_settings.
    """

    def get_emitter(self) -> AuditEmitter:
        emitter_class = import_string(settings.BILLING_AUDIT_EMITTER)
        return emitter_class()

    def snapshot(self, instance: models.Model) -> dict[str, Any]:
        """Concrete field values of a row, minus sensitive keys."""
        data = {}
        for model_field in instance._meta.concrete_fields:
            key = model_field.attname
            if key in SENSITIVE_KEYS:
                continue
            data[key] = _plain(model_field.value_from_object(instance))
        return data

    def build_event(
        self,
        action: str,
        instance: models.Model,
        old_data: dict[str, Any] | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> AuditEvent:
        if action == AuditAction.DELETE:
            new_data = None
            old_data = old_data if old_data is not None else self.snapshot(instance)
        else:
            new_data = self.snapshot(instance)
        if action == AuditAction.INSERT:
            old_data = None
        tenant_id = getattr(instance, "tenant_id", None)
        return AuditEvent(
            action=str(action),
            table=instance._meta.db_table,
            record_id=str(instance.pk),
            old_data=old_data,
            new_data=new_data,
            changed_fields=changed_fields(old_data, new_data),
            tenant_id=str(tenant_id) if tenant_id else None,
            actor_id=str(actor_id) if actor_id else None,
        )

    def record(
        self,
        action: str,
        instance: models.Model,
        old_data: dict[str, Any] | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> AuditEvent:
        """
        Build the event now and emit it after the current transaction commits.

        For DELETE pass old_data and call before the row is deleted (the
        primary key is read from the instance).
        """
        event = self.build_event(action, instance, old_data=old_data, actor_id=actor_id)
        emitter = self.get_emitter()
        transaction.on_commit(lambda: emitter.emit(event), robust=True)
        return event


# Module-level singleton
audit = AuditRecorder()
