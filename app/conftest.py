"""
Project-wide pytest configuration.

Tests run against an in-memory SQLite database built from the models
(--nomigrations). Payout code only uses SELECT ... FOR UPDATE, which
SQLite ignores, so row-locking semantics are covered by the state checks.
The concurrent-run test in test_balance_aggregator.py only runs against
PostgreSQL.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full payout run workflows)
    - test_services.py, test_tasks.py, test_webhooks.py, etc. → integration
    - test_models.py, test_currency.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_tasks.py",
        "test_webhooks.py",
        "test_eligibility.py",
        "test_balance_aggregator.py",
        "test_payment_builder.py",
        "test_disbursement.py",
        "test_reconciliation.py",
        "test_credits.py",
        "test_payout_run.py",
        "test_stripe_processor.py",
        "test_paypal_processor.py",
        "test_admin.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_currency.py",
        "test_locks.py",
        "test_registry.py",
        "test_state_transitions.py",
        "test_adapters.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
