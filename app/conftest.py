"""
Project-wide pytest configuration.

Sets up Django and tags every test as unit, integration or e2e from its
module name, so a run can be narrowed with -m. App fixtures live in each
app's tests/conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Module name -> category; anything unlisted hits the database and counts
# as integration
CATEGORY_BY_MODULE = {
    "test_integration.py": "e2e",
    "test_allocation_engine.py": "integration",
    "test_payable_ledger.py": "integration",
    "test_invoice_receipts.py": "integration",
    "test_bank_reconciler.py": "integration",
    "test_audit.py": "integration",
    "test_money.py": "unit",
    "test_models.py": "unit",
    "test_managers.py": "unit",
    "test_locks.py": "unit",
    "test_services.py": "unit",
}

CATEGORIES = {"unit", "integration", "e2e"}


def pytest_configure(config):
    django.setup()


def pytest_collection_modifyitems(items):
    """Add the category marker unless the test already carries one."""
    for item in items:
        if CATEGORIES & {marker.name for marker in item.iter_markers()}:
            continue
        filename = os.path.basename(str(item.fspath))
        category = CATEGORY_BY_MODULE.get(filename, "integration")
        item.add_marker(getattr(pytest.mark, category))
