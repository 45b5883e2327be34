# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for dashboard widgets and their cache."""

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from src.domains.dashboard import cache, service as dashboard_service
from src.domains.dashboard.service import (
    DashboardService,
    bucket_label,
    bucket_start,
    calculate_trend,
    commission_period_windows,
    year_over_year_change,
)
from src.infrastructure.cache import RedisError
from src.infrastructure.database.models import ActivityLog
from src.utils.csv_export import UTF8_BOM
from tests.conftest import result_with


class TestHelpers:
    """Tests for trend and bucketing helpers."""

    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [(10, 5, "up"), (Decimal("1.00"), Decimal("2.00"), "down"), (3, 3, "neutral")],
    )
    def test_calculate_trend(self, current, previous, expected) -> None:
        assert calculate_trend(current, previous) == expected

    def test_bucket_start(self) -> None:
        day = date(2025, 3, 13)

        assert bucket_start(day, "day") == day
        assert bucket_start(day, "week") == date(2025, 3, 10)
        assert bucket_start(day, "month") == date(2025, 3, 1)

    def test_dashboard_key(self) -> None:
        assert cache.dashboard_key("cash_flow", 90, "week") == "dashboard:cash_flow:90:week"


class TestDashboardCache:
    """Tests for the Redis backed widget cache."""

    @pytest.mark.asyncio
    async def test_without_redis_caching_is_disabled(self, agency_id) -> None:
        with patch.object(cache, "get_redis_or_none", return_value=None):
            assert await cache.get_cached(agency_id, "dashboard:kpis") is None
            await cache.set_cached(agency_id, "dashboard:kpis", {"a": 1}, 300)
            assert await cache.invalidate_dashboard_cache(agency_id) == 0

    @pytest.mark.asyncio
    async def test_invalidation_deletes_agency_dashboard_keys(self, agency_id) -> None:
        redis = AsyncMock()
        redis.delete_agency_keys.return_value = 3

        with patch.object(cache, "get_redis_or_none", return_value=redis):
            deleted = await cache.invalidate_dashboard_cache(agency_id)

        assert deleted == 3
        redis.delete_agency_keys.assert_awaited_once_with(agency_id, "dashboard:*")

    @pytest.mark.asyncio
    async def test_redis_errors_are_not_fatal(self, agency_id) -> None:
        redis = AsyncMock()
        redis.get_for_agency.side_effect = RedisError("down")

        with patch.object(cache, "get_redis_or_none", return_value=redis):
            assert await cache.get_cached(agency_id, "dashboard:kpis") is None


class TestDueSoonCount:
    """Tests for DashboardService.get_due_soon_count."""

    @pytest.mark.asyncio
    async def test_computes_and_caches(self, mock_db, agency_id, sample_agency) -> None:
        mock_db.get.return_value = sample_agency
        mock_db.execute.return_value = result_with(one=(2, Decimal("1500")))
        redis = AsyncMock()
        redis.get_for_agency.return_value = None

        with patch.object(cache, "get_redis_or_none", return_value=redis):
            result = await DashboardService(mock_db, agency_id, cache_ttl=60).get_due_soon_count()

        assert result.count == 2
        assert result.total_amount == Decimal("1500.00")
        assert result.threshold_days == 4
        redis.set_for_agency.assert_awaited_once_with(
            agency_id,
            "dashboard:due_soon_count",
            {"count": 2, "total_amount": 1500.0, "threshold_days": 4},
            expire_seconds=60,
        )

    @pytest.mark.asyncio
    async def test_cache_hit_skips_database(self, mock_db, agency_id) -> None:
        redis = AsyncMock()
        redis.get_for_agency.return_value = {
            "count": 1,
            "total_amount": 99.5,
            "threshold_days": 7,
        }

        with patch.object(cache, "get_redis_or_none", return_value=redis):
            result = await DashboardService(mock_db, agency_id).get_due_soon_count()

        assert result.threshold_days == 7
        mock_db.execute.assert_not_awaited()


TODAY = date(2025, 6, 15)


@pytest.fixture
def uncached_dashboard(mock_db, agency_id, sample_agency):
    """Dashboard with caching disabled and the agency calendar fixed at TODAY."""
    mock_db.get.return_value = sample_agency
    with (
        patch.object(cache, "get_redis_or_none", return_value=None),
        patch.object(dashboard_service, "agency_today", return_value=TODAY),
        patch.object(
            dashboard_service, "agency_now", return_value=datetime(2025, 6, 15, 10, 30)
        ),
    ):
        yield DashboardService(mock_db, agency_id)


class TestCommissionHelpers:
    """Tests for period windows, year over year change and bucket labels."""

    def test_all_compares_against_month_before_last(self) -> None:
        current, previous = commission_period_windows("all", TODAY)

        assert current is None
        assert previous == (date(2025, 4, 15), date(2025, 5, 15))

    @pytest.mark.parametrize(
        ("period", "today", "current", "previous"),
        [
            (
                "quarter",
                date(2025, 5, 20),
                (date(2025, 4, 1), date(2025, 6, 30)),
                (date(2025, 1, 1), date(2025, 3, 31)),
            ),
            (
                "month",
                date(2025, 3, 10),
                (date(2025, 3, 1), date(2025, 3, 31)),
                (date(2025, 2, 1), date(2025, 2, 28)),
            ),
            (
                "year",
                date(2025, 1, 2),
                (date(2025, 1, 1), date(2025, 12, 31)),
                (date(2024, 1, 1), date(2024, 12, 31)),
            ),
        ],
    )
    def test_calendar_periods(self, period, today, current, previous) -> None:
        assert commission_period_windows(period, today) == (current, previous)

    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [
            (Decimal("750.00"), Decimal("300.00"), Decimal("150.0")),
            (Decimal("100.00"), Decimal("300.00"), Decimal("-66.7")),
            (Decimal("150.00"), Decimal("0.00"), Decimal("100.0")),
            (Decimal("0.00"), Decimal("0.00"), Decimal("0.0")),
            (Decimal("150.00"), None, None),
        ],
    )
    def test_year_over_year_change(self, current, previous, expected) -> None:
        assert year_over_year_change(current, previous) == expected

    def test_bucket_label(self) -> None:
        assert bucket_label(date(2025, 6, 30), "week") == "Jun 30 - Jul 06, 2025"
        assert bucket_label(date(2025, 6, 1), "month") == "June 2025"
        assert bucket_label(date(2025, 6, 3), "day") == "Jun 03, 2025"


class TestSeasonalCommission:
    """Tests for DashboardService.get_seasonal_commission."""

    @pytest.mark.asyncio
    async def test_months_trends_and_highlights(self, uncached_dashboard, mock_db) -> None:
        plan = (Decimal("10000.00"), Decimal("1500.00"))
        mock_db.execute.return_value = result_with(
            rows=[
                (date(2025, 6, 3), Decimal("5000.00"), *plan),
                (date(2024, 6, 10), Decimal("2000.00"), *plan),
                (date(2025, 3, 1), Decimal("1000.00"), *plan),
                (date(2025, 1, 5), Decimal("1000.00"), *plan),
                (date(2024, 1, 20), Decimal("0.00"), *plan),
            ]
        )

        months = await uncached_dashboard.get_seasonal_commission()

        assert [m.month for m in months][:2] == ["2024-07", "2024-08"]
        assert len(months) == 12
        by_month = {m.month: m for m in months}
        assert by_month["2025-06"].commission == Decimal("750.00")
        assert by_month["2025-06"].year_over_year_change == Decimal("150.0")
        assert by_month["2025-01"].year_over_year_change == Decimal("100.0")
        assert by_month["2025-03"].year_over_year_change is None
        assert {m.month for m in months if m.is_peak} == {"2025-06", "2025-01", "2025-03"}
        assert {m.month for m in months if m.is_quiet} == {"2025-02", "2025-04", "2025-05"}

        sql = str(mock_db.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
        assert "installments.generates_commission IS true" in sql
        assert "installments.paid_date >= " in sql


class TestCommissionByCountry:
    """Tests for DashboardService.get_commission_by_country."""

    @pytest.mark.asyncio
    async def test_shares_and_trends(self, uncached_dashboard, mock_db) -> None:
        mock_db.execute.return_value = result_with(
            rows=[
                ("India", date(2025, 6, 2), Decimal("5000"), Decimal("10000"), Decimal("1500")),
                ("India", date(2025, 5, 2), Decimal("2000"), Decimal("10000"), Decimal("1500")),
                ("Nepal", date(2025, 6, 5), Decimal("1000"), Decimal("4000"), Decimal("1000")),
                ("Nepal", date(2025, 5, 9), Decimal("4000"), Decimal("4000"), Decimal("1000")),
                (None, date(2025, 6, 7), Decimal("1000"), Decimal("10000"), Decimal("1000")),
            ]
        )

        countries = await uncached_dashboard.get_commission_by_country("month")

        assert [(c.country, c.commission, c.percentage_share, c.trend) for c in countries] == [
            ("India", Decimal("750.00"), Decimal("68.2"), "up"),
            ("Nepal", Decimal("250.00"), Decimal("22.7"), "down"),
            ("Unknown", Decimal("100.00"), Decimal("9.1"), "up"),
        ]
        sql = str(mock_db.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
        assert "JOIN students ON students.id = enrollments.student_id" in sql

    @pytest.mark.asyncio
    async def test_only_top_five_countries(self, uncached_dashboard, mock_db) -> None:
        mock_db.execute.return_value = result_with(
            rows=[
                (country, date(2025, 6, 1), Decimal(amount), Decimal("1000"), Decimal("100"))
                for country, amount in [
                    ("India", "600"),
                    ("Nepal", "500"),
                    ("Vietnam", "400"),
                    ("Brazil", "300"),
                    ("Colombia", "200"),
                    ("Thailand", "100"),
                ]
            ]
        )

        countries = await uncached_dashboard.get_commission_by_country("all")

        assert [c.country for c in countries] == ["India", "Nepal", "Vietnam", "Brazil", "Colombia"]
        assert sum(c.percentage_share for c in countries) == Decimal("95.2")


class TestCashFlowExport:
    """Tests for DashboardService.export_cash_flow_csv."""

    @staticmethod
    def make_installment(
        installment_id: str, status: str, amount: str, due: date, college: str | None
    ) -> MagicMock:
        installment = MagicMock()
        installment.id = installment_id
        installment.status = status
        installment.amount = Decimal(amount)
        installment.paid_amount = Decimal(amount) if status == "paid" else None
        installment.student_due_date = due
        enrollment = installment.payment_plan.enrollment
        enrollment.student.full_name = "Mei Chen"
        if college is None:
            enrollment.branch = None
        else:
            enrollment.branch.college.name = college
        return installment

    @pytest.mark.asyncio
    async def test_one_row_per_installment_and_logged(
        self, uncached_dashboard, mock_db, agency_id
    ) -> None:
        mock_db.execute.return_value = result_with(
            scalars=[
                self.make_installment("inst-1", "paid", "1000", date(2025, 6, 16), "Coastal"),
                self.make_installment("inst-2", "pending", "500", date(2025, 6, 18), None),
            ]
        )

        export = await uncached_dashboard.export_cash_flow_csv(
            days=30, group_by="week", user_id="user-1"
        )

        assert export.filename == "cash-flow-projection-week-2025-06-15.csv"
        assert export.row_count == 2
        assert export.content.startswith(UTF8_BOM)
        rows = list(csv.reader(io.StringIO(export.content.removeprefix(UTF8_BOM))))
        assert rows[0][0] == "Date Bucket"
        assert rows[1] == [
            "Jun 16 - Jun 22, 2025",
            "$1,000.00 AUD",
            "$500.00 AUD",
            "$1,500.00 AUD",
            "2",
            "Mei Chen",
            "$1,000.00 AUD",
            "Paid",
            "Jun 16, 2025",
            "Coastal",
        ]
        assert rows[2][7:] == ["Pending", "Jun 18, 2025", "N/A"]

        [entry] = [
            c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], ActivityLog)
        ]
        assert entry.entity_type == "report"
        assert entry.action == "exported"
        assert entry.entity_id == agency_id
        assert entry.metadata_["report_type"] == "cash_flow_projection"
        mock_db.commit.assert_awaited_once()
