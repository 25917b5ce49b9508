"""
Pytest fixtures for billing tests.

Redis is mocked for every test in this package, so ledger locks always
succeed unless a test configures the mock otherwise.

Usage:
    def test_apply_payment(tenant_id, payable, bank_id):
        application = PayableLedger.apply_payment(
            tenant_id, payable.id, Decimal("100.00"), bank_id, date(2024, 4, 10)
        )
        assert application.payable.status == PayableStatus.PARCIALMENTE_PAGO
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from billing.tests.factories import (
    BankTransactionFactory,
    InvoiceFactory,
    PayableFactory,
)
from billing.state_machines import TransactionType
from billing.tests.helpers import ListEmitter


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock Redis for distributed locking."""
    mock_client = MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.delete.return_value = 1
    mock_client.eval.return_value = 1

    with patch("billing.locks.get_redis_connection", return_value=mock_client):
        yield mock_client


@pytest.fixture
def audit_events(settings):
    """Route audit events to an in-memory list and return it."""
    settings.BILLING_AUDIT_EMITTER = "billing.tests.helpers.ListEmitter"
    ListEmitter.events = []
    yield ListEmitter.events
    ListEmitter.events = []


# =============================================================================
# Identity Fixtures
# =============================================================================


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid.uuid4()


@pytest.fixture
def actor_id():
    return uuid.uuid4()


@pytest.fixture
def bank_id():
    return uuid.uuid4()


# =============================================================================
# Ledger Fixtures
# =============================================================================


@pytest.fixture
def invoice(db, tenant_id):
    """Invoice: gross 10,500.00, ISS 500.00 retained, net 10,000.00."""
    return InvoiceFactory(tenant_id=tenant_id)


@pytest.fixture
def invoice_iss_not_retained(db, tenant_id):
    """Same values as invoice, with the retained flag left null."""
    return InvoiceFactory(tenant_id=tenant_id, is_iss_retained=None)


@pytest.fixture
def payable(db, tenant_id):
    """Pending payable owing 5,100.00."""
    return PayableFactory(tenant_id=tenant_id, amount_to_pay=Decimal("5100.00"))


@pytest.fixture
def debit_transaction(db, tenant_id):
    """Pending debit of 5,100.00."""
    return BankTransactionFactory(tenant_id=tenant_id)


@pytest.fixture
def credit_transaction(db, tenant_id):
    """Pending credit of 10,000.00."""
    return BankTransactionFactory(
        tenant_id=tenant_id,
        transaction_type=TransactionType.CREDIT,
        amount=Decimal("10000.00"),
        description="TED RECEBIDA HOSPITAL SANTA LUZIA",
    )
