# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for College service."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from src.domains.college.service import (
    CollegeAlreadyExistsError,
    CollegeInUseError,
    CollegeNotFoundError,
    CollegeService,
)
from src.infrastructure.database.models import ActivityLog, Branch, College
from src.models.college import BranchCreateRequest, BranchUpdateRequest, CollegeCreateRequest
from tests.conftest import result_with

CREATED = datetime(2025, 2, 1, tzinfo=timezone.utc)


@pytest.fixture
def college_service(mock_db, agency_id):
    """Create college service with mock database."""
    return CollegeService(mock_db, agency_id)


def make_college(agency_id: str, rate: str | None = "15.00") -> College:
    return College(
        id="college-1",
        agency_id=agency_id,
        name="Riverside College",
        city="Brisbane",
        default_commission_rate_percent=Decimal(rate) if rate else None,
        gst_status="included",
        created_at=CREATED,
        updated_at=CREATED,
    )


def make_branch(college: College, rate: str | None) -> Branch:
    branch = Branch(
        id="branch-1",
        agency_id=college.agency_id,
        college_id=college.id,
        name="Brisbane CBD",
        commission_rate_percent=Decimal(rate) if rate else None,
        created_at=CREATED,
        updated_at=CREATED,
    )
    branch.college = college
    return branch


def added(mock_db, model):
    return [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], model)]


class TestBranchCommissionRate:
    """Branches without their own rate use the college default."""

    @pytest.mark.asyncio
    async def test_new_branch_without_rate_inherits_college_default(
        self, college_service, mock_db, agency_id
    ):
        college = make_college(agency_id, rate="15.00")
        statements = []

        async def execute(stmt, *args, **kwargs):
            statements.append(stmt)
            if len(statements) == 1:
                return result_with(college)
            return result_with(added(mock_db, Branch)[0])

        async def assign_defaults():
            branch = added(mock_db, Branch)[0]
            branch.id = "branch-1"
            branch.created_at = branch.updated_at = CREATED

        mock_db.execute.side_effect = execute
        mock_db.flush.side_effect = assign_defaults

        response = await college_service.create_branch(
            "college-1", BranchCreateRequest(name="Gold Coast"), user_id="user-1"
        )

        assert response.commission_rate_percent is None
        assert response.effective_commission_rate_percent == Decimal("15.00")
        [entry] = added(mock_db, ActivityLog)
        assert entry.description == "Added branch Gold Coast to Riverside College"

    @pytest.mark.asyncio
    async def test_own_rate_overrides_college_default(self, college_service, mock_db, agency_id):
        branch = make_branch(make_college(agency_id, rate="15.00"), rate="20.00")
        mock_db.execute.return_value = result_with(branch)

        response = await college_service.get_branch("branch-1")

        assert response.effective_commission_rate_percent == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_clearing_rate_reverts_to_college_default(
        self, college_service, mock_db, agency_id
    ):
        branch = make_branch(make_college(agency_id, rate="15.00"), rate="20.00")
        mock_db.execute.return_value = result_with(branch)

        response = await college_service.update_branch(
            "branch-1", BranchUpdateRequest(commission_rate_percent=None), user_id="user-1"
        )

        assert branch.commission_rate_percent is None
        assert response.effective_commission_rate_percent == Decimal("15.00")
        mock_db.commit.assert_awaited_once()

    def test_no_rate_anywhere_is_zero(self, agency_id):
        branch = make_branch(make_college(agency_id, rate=None), rate=None)

        assert branch.effective_commission_rate_percent == Decimal("0")


class TestColleges:
    """Tests for college CRUD rules."""

    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, college_service, mock_db):
        mock_db.execute.return_value = result_with("college-1")

        with pytest.raises(CollegeAlreadyExistsError, match="already exists"):
            await college_service.create_college(CollegeCreateRequest(name="riverside college"))

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_college_with_enrollments_cannot_be_deleted(
        self, college_service, mock_db, agency_id
    ):
        mock_db.execute.return_value = result_with(make_college(agency_id))
        mock_db.commit.side_effect = IntegrityError(
            "DELETE FROM colleges", {}, Exception("violates foreign key constraint")
        )

        with pytest.raises(CollegeInUseError, match="has enrollments"):
            await college_service.delete_college("college-1", user_id="user-1")

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_agency_college_is_not_found(self, college_service, mock_db):
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(CollegeNotFoundError):
            await college_service.get_college("college-9")
