"""
Tests for the audit boundary.

Covers:
1. Snapshots and changed_fields
2. Emission only after commit
3. Events produced by ledger writes
"""

import datetime
import uuid
from decimal import Decimal

import pytest
from django.db import transaction

from billing.audit import (
    AuditAction,
    AuditEvent,
    LoggingAuditEmitter,
    audit,
    changed_fields,
)
from billing.exceptions import InvalidAmount
from billing.services import PayableLedger
from billing.tests.factories import PayableFactory


class TestChangedFields:
    def test_differing_values(self):
        old = {"status": "pendente", "amount_to_pay": "100.00"}
        new = {"status": "pago", "amount_to_pay": "100.00"}

        assert changed_fields(old, new) == ["status"]

    def test_keys_on_one_side_count_as_changed(self):
        assert changed_fields({"a": 1}, {"b": 2}) == ["a", "b"]

    def test_insert_reports_every_key(self):
        assert changed_fields(None, {"status": "pendente", "id": "x"}) == [
            "id",
            "status",
        ]

    def test_volatile_keys_ignored(self):
        old = {"updated_at": "2024-01-01", "tenant_id": "a"}
        new = {"updated_at": "2024-02-01", "tenant_id": "b"}

        assert changed_fields(old, new) == []


@pytest.mark.django_db
class TestSnapshot:
    def test_values_are_plain(self, payable):
        data = audit.snapshot(payable)

        assert data["id"] == str(payable.id)
        assert data["amount_to_pay"] == "5100.00"
        assert data["allocation_id"] == str(payable.allocation_id)

    def test_sensitive_keys_stripped(self, mocker):
        def fake_field(name, value):
            field = mocker.Mock(attname=name)
            field.value_from_object.return_value = value
            return field

        instance = mocker.Mock()
        instance._meta.concrete_fields = [
            fake_field("doctor_name", "Dra. Ana"),
            fake_field("api_key", "s3cr3t"),
            fake_field("password", "hunter2"),
        ]

        assert audit.snapshot(instance) == {"doctor_name": "Dra. Ana"}


@pytest.mark.django_db
class TestBuildEvent:
    def test_insert_has_no_old_data(self, payable, actor_id):
        event = audit.build_event(AuditAction.INSERT, payable, actor_id=actor_id)

        assert event.old_data is None
        assert event.new_data["id"] == str(payable.id)
        assert event.table == "billing_payable"
        assert event.tenant_id == str(payable.tenant_id)
        assert event.actor_id == str(actor_id)

    def test_delete_has_no_new_data(self, payable):
        before = audit.snapshot(payable)

        event = audit.build_event(AuditAction.DELETE, payable, old_data=before)

        assert event.new_data is None
        assert event.old_data == before
        assert "status" in event.changed_fields

    def test_update_diff(self, payable):
        before = audit.snapshot(payable)
        payable.doctor_name = "Dra. Renomeada"

        event = audit.build_event(AuditAction.UPDATE, payable, old_data=before)

        assert event.changed_fields == ["doctor_name"]

    def test_to_dict(self, payable):
        event = audit.build_event(AuditAction.INSERT, payable)

        data = event.to_dict()

        assert data["action"] == "INSERT"
        assert data["record_id"] == str(payable.id)
        assert isinstance(data["occurred_at"], str)


@pytest.mark.django_db
class TestEmission:
    """Events reach the emitter only after COMMIT."""

    def test_emitted_on_commit(
        self, payable, audit_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            audit.record(AuditAction.UPDATE, payable, old_data=audit.snapshot(payable))

        assert len(audit_events) == 1
        assert audit_events[0].action == "UPDATE"

    def test_not_emitted_before_commit(
        self, payable, audit_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            audit.record(AuditAction.UPDATE, payable, old_data=audit.snapshot(payable))

        assert audit_events == []
        assert len(callbacks) == 1

    def test_rolled_back_block_emits_nothing(
        self, payable, audit_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(RuntimeError):
                with transaction.atomic():
                    audit.record(AuditAction.INSERT, payable)
                    raise RuntimeError("rollback")

        assert audit_events == []

    def test_payment_produces_events(
        self,
        tenant_id,
        bank_id,
        actor_id,
        audit_events,
        django_capture_on_commit_callbacks,
    ):
        payable = PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("100.00"))

        with django_capture_on_commit_callbacks(execute=True):
            PayableLedger.apply_payment(
                tenant_id,
                payable.id,
                Decimal("100.00"),
                bank_id,
                datetime.date(2024, 4, 10),
                actor_id=actor_id,
            )

        by_table = {(e.table, e.action): e for e in audit_events}
        assert ("billing_payment", "INSERT") in by_table
        update = by_table[("billing_payable", "UPDATE")]
        assert "status" in update.changed_fields
        assert update.old_data["status"] == "pendente"
        assert update.new_data["status"] == "pago"
        assert update.actor_id == str(actor_id)

    def test_refused_write_emits_nothing(
        self, tenant_id, payable, bank_id, audit_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(InvalidAmount):
                PayableLedger.apply_payment(
                    tenant_id,
                    payable.id,
                    Decimal("0"),
                    bank_id,
                    datetime.date(2024, 4, 10),
                )

        assert audit_events == []


class TestLoggingAuditEmitter:
    def test_logs_event(self, mocker):
        logger = mocker.patch("billing.audit.logger")
        event = AuditEvent(
            action="INSERT",
            table="billing_payment",
            record_id=str(uuid.uuid4()),
            old_data=None,
            new_data={"amount": "10.00"},
            changed_fields=["amount"],
        )

        LoggingAuditEmitter().emit(event)

        logger.info.assert_called_once()
        assert logger.info.call_args[1]["extra"]["audit_event"]["table"] == (
            "billing_payment"
        )
