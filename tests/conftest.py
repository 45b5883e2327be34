# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests

Test environment variables are set at import time, before any src module
reads settings or builds the Dramatiq broker.
"""

import os
from collections.abc import Generator
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

TEST_ENVIRONMENT = {
    "ENVIRONMENT": "development",
    "DEBUG": "true",
    "LOG_LEVEL": "DEBUG",
    "JWT_SECRET_KEY": "test-secret-key-for-testing-only",
    "JWT_ALGORITHM": "HS256",
    "JOBS_API_KEY": "test-jobs-api-key",
    "JOBS_SCHEDULER_ENABLED": "false",
    "RATE_LIMIT_ENABLED": "false",
    "DRAMATIQ_TEST_MODE": "true",
    "EMAIL_PROVIDER": "smtp",
    "EMAIL_SMTP_HOST": "localhost",
}

for _key, _value in TEST_ENVIRONMENT.items():
    os.environ.setdefault(_key, _value)


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (assembled app, no services)"
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def test_environment() -> dict[str, str]:
    """Provide test environment variables."""
    return dict(TEST_ENVIRONMENT)


@pytest.fixture
def fresh_settings() -> Generator[None, None, None]:
    """Clear the settings cache before and after a test that patches the environment."""
    from src.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create mock database session."""
    db = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.delete = AsyncMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.execute = AsyncMock()
    db.get = AsyncMock()
    return db


def result_with(
    scalar: Any = None,
    scalars: list[Any] | None = None,
    rows: list[Any] | None = None,
    one: Any = None,
) -> MagicMock:
    """Build a mock SQLAlchemy result.

    Args:
        scalar: Value for scalar_one_or_none() and scalar().
        scalars: Values for scalars().all().
        rows: Values for all().
        one: Value for one().
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.scalars.return_value.first.return_value = (scalars or [None])[0]
    result.all.return_value = rows or []
    result.one.return_value = one
    result.rowcount = len(rows or scalars or [])
    return result


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def agency_id() -> str:
    return str(uuid4())


@pytest.fixture
def sample_agency(agency_id: str) -> MagicMock:
    """Create a sample agency model."""
    agency = MagicMock()
    agency.id = agency_id
    agency.name = "Sunrise Education"
    agency.contact_email = "office@sunrise.example"
    agency.contact_phone = "+61 7 5555 0100"
    agency.currency = "AUD"
    agency.timezone = "Australia/Brisbane"
    agency.overdue_cutoff_time = time(17, 0)
    agency.due_soon_threshold_days = 4
    agency.payment_instructions = "Pay by bank transfer"
    return agency


@pytest.fixture
def sample_installment(agency_id: str) -> MagicMock:
    """Create a sample pending installment model."""
    installment = MagicMock()
    installment.id = str(uuid4())
    installment.agency_id = agency_id
    installment.payment_plan_id = str(uuid4())
    installment.installment_number = 1
    installment.is_initial_payment = False
    installment.amount = Decimal("1000.00")
    installment.generates_commission = True
    installment.student_due_date = date(2025, 3, 10)
    installment.college_due_date = date(2025, 3, 17)
    installment.status = "pending"
    installment.paid_date = None
    installment.paid_amount = None
    installment.payment_notes = None
    installment.last_notified_date = None
    installment.created_at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    installment.updated_at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return installment
