# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard widgets.

All widgets read dates in the agency's timezone and are cached in Redis
for a few minutes. Writes that change payments invalidate the cache.

The cash flow projection can also be exported as CSV, which is logged as
an activity.

Example:
    >>> service = DashboardService(db, agency_id, cache_ttl=300)
    >>> kpis = await service.get_kpis()
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.domains.activity.service import ActivityService
from src.domains.dashboard.cache import dashboard_key, get_cached, set_cached
from src.domains.payments.commission import calculate_earned_commission
from src.domains.reports.service import CsvExport
from src.infrastructure.database.models import (
    Agency,
    Branch,
    College,
    Enrollment,
    Installment,
    PaymentPlan,
    Student,
)
from src.models.dashboard import (
    CashFlowBucket,
    CashFlowGrouping,
    CashFlowInstallment,
    CashFlowProjection,
    CollegeCommission,
    CommissionPeriod,
    CountAndTotal,
    CountryCommission,
    DashboardKPIs,
    DueSoonCount,
    KPIMetric,
    MonthlyCommission,
    OverduePayment,
    PaymentStatusSummary,
    Trend,
)
from src.utils.csv_export import write_csv
from src.utils.datetime import (
    add_months,
    agency_now,
    agency_today,
    end_of_month,
    get_zone,
    start_of_month,
    start_of_week,
)
from src.utils.money import format_currency, round_money

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_CACHE_TTL = 300
STATUS_SUMMARY_DUE_SOON_DAYS = 7
UNPAID_STATUSES = ("pending", "due_soon", "overdue", "partial")
NOT_DUE_STATUSES = ("cancelled", "draft")
SEASONAL_MONTHS = 12
SEASONAL_HIGHLIGHTS = 3
TOP_COUNTRIES = 5
UNKNOWN_COUNTRY = "Unknown"
PERCENT_PLACE = Decimal("0.1")

CASH_FLOW_CSV_HEADERS = [
    "Date Bucket",
    "Paid Amount",
    "Expected Amount",
    "Total Amount",
    "Installment Count",
    "Student Name",
    "Installment Amount",
    "Installment Status",
    "Due Date",
    "College Name",
]


def calculate_trend(current: Decimal | int, previous: Decimal | int) -> Trend:
    if current > previous:
        return "up"
    if current < previous:
        return "down"
    return "neutral"


def bucket_start(day: date, group_by: CashFlowGrouping) -> date:
    """First day of the cash flow bucket containing a date."""
    if group_by == "week":
        return start_of_week(day)
    if group_by == "month":
        return start_of_month(day)
    return day


def bucket_label(start: date, group_by: CashFlowGrouping) -> str:
    """Human readable cash flow bucket, e.g. "Mar 10 - Mar 16, 2025"."""
    if group_by == "week":
        end = start + timedelta(days=6)
        return f"{start:%b %d} - {end:%b %d, %Y}"
    if group_by == "month":
        return f"{start:%B %Y}"
    return f"{start:%b %d, %Y}"


def round_percent(value: Decimal) -> Decimal:
    return value.quantize(PERCENT_PLACE, rounding=ROUND_HALF_UP)


def year_over_year_change(current: Decimal, previous: Decimal | None) -> Decimal | None:
    """Percentage change against the same month last year.

    A month that had nothing last year counts as 100% growth when it earned
    anything now.
    """
    if previous is None:
        return None
    if previous > 0:
        return round_percent((current - previous) / previous * 100)
    return Decimal("100.0") if current > 0 else Decimal("0.0")


def commission_period_windows(
    period: CommissionPeriod,
    today: date,
) -> tuple[tuple[date, date] | None, tuple[date, date]]:
    """Current and previous date ranges for the commission by country widget.

    The "all" period counts every payment as current and compares it
    against the month before last.

    Returns:
        Tuple of (current, previous). current is None for "all".
    """
    if period == "all":
        return None, (add_months(today, -2), add_months(today, -1))
    if period == "year":
        return (
            (date(today.year, 1, 1), date(today.year, 12, 31)),
            (date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)),
        )
    if period == "quarter":
        start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
        previous_start = add_months(start, -3)
        return (
            (start, end_of_month(add_months(start, 2))),
            (previous_start, start - timedelta(days=1)),
        )
    month_start = start_of_month(today)
    previous_end = month_start - timedelta(days=1)
    return (month_start, end_of_month(today)), (start_of_month(previous_end), previous_end)


def _decimal(value: object) -> Decimal:
    return round_money(Decimal(str(value or 0)))


def _college_name(installment: Installment) -> str | None:
    branch = installment.payment_plan.enrollment.branch
    return branch.college.name if branch and branch.college else None


class DashboardService:
    """Service for dashboard widgets.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
        _cache_ttl: Seconds a computed widget stays cached.
    """

    def __init__(
        self,
        db: AsyncSession,
        agency_id: str,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ) -> None:
        self._db = db
        self._agency_id = agency_id
        self._cache_ttl = cache_ttl
        self._activity = ActivityService(db, agency_id)

    async def _cached(
        self,
        key: str,
        model: type[M],
        compute: Callable[[], Awaitable[M]],
    ) -> M:
        cached = await get_cached(self._agency_id, key)
        if cached is not None:
            return model.model_validate(cached)

        value = await compute()
        await set_cached(self._agency_id, key, value.model_dump(mode="json"), self._cache_ttl)
        return value

    async def _agency(self) -> Agency | None:
        return await self._db.get(Agency, self._agency_id)

    async def _today(self) -> date:
        agency = await self._agency()
        return agency_today(agency.timezone if agency else None)

    # =========================================================================
    # KPIs
    # =========================================================================

    async def get_kpis(self) -> DashboardKPIs:
        """Headline KPIs with trends against the end of the previous month."""
        return await self._cached(dashboard_key("kpis"), DashboardKPIs, self._compute_kpis)

    async def _compute_kpis(self) -> DashboardKPIs:
        agency = await self._agency()
        tz = agency.timezone if agency else None
        today = agency_today(tz)

        month_start = start_of_month(today)
        previous_month_end = month_start - timedelta(days=1)
        previous_month_start = start_of_month(previous_month_end)
        cutoff = datetime.combine(month_start, time.min, tzinfo=get_zone(tz))

        active_students = await self._active_students()
        previous_students = await self._active_students(created_before=cutoff)
        active_plans = await self._active_plans()
        previous_plans = await self._active_plans(created_before=cutoff)
        outstanding = await self._outstanding_amount()
        previous_outstanding = await self._outstanding_amount(created_before=cutoff)
        earned = await self._earned_commission()
        previous_earned = await self._earned_commission(created_before=cutoff)
        collection = await self._collection_rate(month_start, end_of_month(today))
        previous_collection = await self._collection_rate(previous_month_start, previous_month_end)

        def metric(value: Decimal | int, previous: Decimal | int) -> KPIMetric:
            return KPIMetric(
                value=Decimal(value),
                previous=Decimal(previous),
                trend=calculate_trend(value, previous),
            )

        return DashboardKPIs(
            active_students=metric(active_students, previous_students),
            active_payment_plans=metric(active_plans, previous_plans),
            outstanding_amount=metric(outstanding, previous_outstanding),
            earned_commission=metric(earned, previous_earned),
            collection_rate=metric(collection, previous_collection),
            currency=agency.currency if agency else "AUD",
        )

    async def _active_students(self, created_before: datetime | None = None) -> int:
        stmt = select(func.count(distinct(Enrollment.student_id))).where(
            Enrollment.agency_id == self._agency_id,
            Enrollment.status == "active",
        )
        if created_before is not None:
            stmt = stmt.where(Enrollment.created_at < created_before)
        return (await self._db.execute(stmt)).scalar() or 0

    async def _active_plans(self, created_before: datetime | None = None) -> int:
        stmt = select(func.count(PaymentPlan.id)).where(
            PaymentPlan.agency_id == self._agency_id,
            PaymentPlan.status == "active",
        )
        if created_before is not None:
            stmt = stmt.where(PaymentPlan.created_at < created_before)
        return (await self._db.execute(stmt)).scalar() or 0

    async def _outstanding_amount(self, created_before: datetime | None = None) -> Decimal:
        stmt = (
            select(func.coalesce(func.sum(Installment.amount), 0))
            .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.status.in_(UNPAID_STATUSES),
                PaymentPlan.status == "active",
            )
        )
        if created_before is not None:
            stmt = stmt.where(PaymentPlan.created_at < created_before)
        return _decimal((await self._db.execute(stmt)).scalar())

    async def _earned_commission(self, created_before: datetime | None = None) -> Decimal:
        stmt = select(func.coalesce(func.sum(PaymentPlan.earned_commission), 0)).where(
            PaymentPlan.agency_id == self._agency_id,
            PaymentPlan.status != "cancelled",
        )
        if created_before is not None:
            stmt = stmt.where(PaymentPlan.created_at < created_before)
        return _decimal((await self._db.execute(stmt)).scalar())

    async def _collection_rate(self, start: date, end: date) -> Decimal:
        """Percentage of the amount due in a period that has been paid."""
        row = (
            await self._db.execute(
                select(
                    func.coalesce(func.sum(Installment.amount), 0),
                    func.coalesce(func.sum(Installment.paid_amount), 0),
                ).where(
                    Installment.agency_id == self._agency_id,
                    Installment.student_due_date >= start,
                    Installment.student_due_date <= end,
                    Installment.status.not_in(NOT_DUE_STATUSES),
                )
            )
        ).one()
        due, paid = Decimal(str(row[0] or 0)), Decimal(str(row[1] or 0))
        if due <= 0:
            return Decimal("0.00")
        return round_money(paid / due * 100)

    # =========================================================================
    # Payment status widgets
    # =========================================================================

    async def _count_and_total(self, *conditions, amount=Installment.amount) -> CountAndTotal:
        row = (
            await self._db.execute(
                select(func.count(Installment.id), func.coalesce(func.sum(amount), 0)).where(
                    Installment.agency_id == self._agency_id, *conditions
                )
            )
        ).one()
        return CountAndTotal(count=row[0] or 0, total_amount=_decimal(row[1]))

    async def get_due_soon_count(self) -> DueSoonCount:
        """Pending installments due within the agency's due soon window."""
        return await self._cached(
            dashboard_key("due_soon_count"), DueSoonCount, self._compute_due_soon_count
        )

    async def _compute_due_soon_count(self) -> DueSoonCount:
        agency = await self._agency()
        threshold = agency.due_soon_threshold_days if agency else 4
        today = agency_today(agency.timezone if agency else None)

        counts = await self._count_and_total(
            Installment.status == "pending",
            Installment.student_due_date >= today,
            Installment.student_due_date <= today + timedelta(days=threshold),
        )
        return DueSoonCount(
            count=counts.count,
            total_amount=counts.total_amount,
            threshold_days=threshold,
        )

    async def get_payment_status_summary(self) -> PaymentStatusSummary:
        """Pending, due soon, overdue and paid this month counts and totals."""
        return await self._cached(
            dashboard_key("payment_status_summary"),
            PaymentStatusSummary,
            self._compute_payment_status_summary,
        )

    async def _compute_payment_status_summary(self) -> PaymentStatusSummary:
        today = await self._today()
        return PaymentStatusSummary(
            pending=await self._count_and_total(Installment.status == "pending"),
            due_soon=await self._count_and_total(
                Installment.status == "pending",
                Installment.student_due_date >= today,
                Installment.student_due_date
                <= today + timedelta(days=STATUS_SUMMARY_DUE_SOON_DAYS),
            ),
            overdue=await self._count_and_total(Installment.status == "overdue"),
            paid_this_month=await self._count_and_total(
                Installment.status == "paid",
                Installment.paid_date >= start_of_month(today),
                amount=Installment.paid_amount,
            ),
        )

    async def get_overdue_payments(self) -> list[OverduePayment]:
        """Overdue installments, oldest first."""
        key = dashboard_key("overdue_payments")
        cached = await get_cached(self._agency_id, key)
        if cached is not None:
            return [OverduePayment.model_validate(item) for item in cached]

        today = await self._today()
        result = await self._db.execute(
            select(Installment)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.status == "overdue",
            )
            .options(
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
            .order_by(Installment.student_due_date)
        )

        payments: list[OverduePayment] = []
        for installment in result.scalars().all():
            enrollment = installment.payment_plan.enrollment
            due = installment.student_due_date or today
            payments.append(
                OverduePayment(
                    installment_id=installment.id,
                    payment_plan_id=installment.payment_plan_id,
                    student_id=enrollment.student.id,
                    student_name=enrollment.student.full_name,
                    college_name=enrollment.branch.college.name,
                    amount=installment.amount,
                    student_due_date=due,
                    days_overdue=max((today - due).days, 0),
                )
            )

        await set_cached(
            self._agency_id,
            key,
            [p.model_dump(mode="json") for p in payments],
            self._cache_ttl,
        )
        return payments

    # =========================================================================
    # Cash flow and commission
    # =========================================================================

    async def get_cash_flow_projection(
        self,
        days: int = 90,
        group_by: CashFlowGrouping = "week",
    ) -> CashFlowProjection:
        """Expected and received amounts over the next days, bucketed.

        Args:
            days: Window length from today, 1 to 365.
            group_by: day, week (buckets start Monday) or month.

        Raises:
            ValueError: If days is out of range.
        """
        if not 1 <= days <= 365:
            raise ValueError("days must be between 1 and 365")

        async def compute() -> CashFlowProjection:
            return await self._compute_cash_flow(days, group_by)

        return await self._cached(
            dashboard_key("cash_flow", days, group_by), CashFlowProjection, compute
        )

    async def _compute_cash_flow(self, days: int, group_by: CashFlowGrouping) -> CashFlowProjection:
        today = await self._today()
        result = await self._db.execute(
            select(Installment)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.status.in_(("pending", "paid")),
                Installment.student_due_date >= today,
                Installment.student_due_date <= today + timedelta(days=days),
            )
            .options(
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.student),
                selectinload(Installment.payment_plan)
                .selectinload(PaymentPlan.enrollment)
                .selectinload(Enrollment.branch)
                .selectinload(Branch.college),
            )
            .order_by(Installment.student_due_date)
        )

        grouped: dict[date, list[Installment]] = defaultdict(list)
        for installment in result.scalars().all():
            grouped[bucket_start(installment.student_due_date, group_by)].append(installment)

        buckets: list[CashFlowBucket] = []
        for start in sorted(grouped):
            items = grouped[start]
            paid = sum(
                (i.paid_amount or Decimal("0") for i in items if i.status == "paid"),
                Decimal("0"),
            )
            expected = sum((i.amount for i in items if i.status == "pending"), Decimal("0"))
            buckets.append(
                CashFlowBucket(
                    date_bucket=start,
                    paid_amount=round_money(paid),
                    expected_amount=round_money(expected),
                    installment_count=len(items),
                    installments=[
                        CashFlowInstallment(
                            installment_id=i.id,
                            student_name=i.payment_plan.enrollment.student.full_name,
                            amount=i.amount,
                            status=i.status,
                            due_date=i.student_due_date,
                            college_name=_college_name(i),
                        )
                        for i in items
                    ],
                )
            )

        return CashFlowProjection(days=days, group_by=group_by, buckets=buckets)

    async def get_commission_by_college(self) -> list[CollegeCommission]:
        """Earned and outstanding commission per college, highest earned first."""
        key = dashboard_key("commission_by_college")
        cached = await get_cached(self._agency_id, key)
        if cached is not None:
            return [CollegeCommission.model_validate(item) for item in cached]

        expected = func.coalesce(PaymentPlan.expected_commission, 0)
        result = await self._db.execute(
            select(
                College.id,
                College.name,
                func.coalesce(func.sum(PaymentPlan.earned_commission), 0),
                func.coalesce(func.sum(expected - PaymentPlan.earned_commission), 0),
                func.count(PaymentPlan.id).filter(PaymentPlan.status == "active"),
            )
            .select_from(PaymentPlan)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .join(Branch, Branch.id == Enrollment.branch_id)
            .join(College, College.id == Branch.college_id)
            .where(
                PaymentPlan.agency_id == self._agency_id,
                PaymentPlan.status != "cancelled",
            )
            .group_by(College.id, College.name)
        )

        colleges = [
            CollegeCommission(
                college_id=row[0],
                college_name=row[1],
                earned_commission=_decimal(row[2]),
                outstanding_commission=max(_decimal(row[3]), Decimal("0.00")),
                active_plans=row[4] or 0,
            )
            for row in result.all()
        ]
        colleges.sort(key=lambda c: c.earned_commission, reverse=True)

        await set_cached(
            self._agency_id,
            key,
            [c.model_dump(mode="json") for c in colleges],
            self._cache_ttl,
        )
        return colleges

    async def get_seasonal_commission(self) -> list[MonthlyCommission]:
        """Commission earned per month over the last twelve months.

        Each month is compared with the same month a year earlier. The three
        best months are flagged as peak and the three weakest as quiet.
        """
        key = dashboard_key("seasonal_commission")
        cached = await get_cached(self._agency_id, key)
        if cached is not None:
            return [MonthlyCommission.model_validate(item) for item in cached]

        today = await self._today()
        current_month = start_of_month(today)
        first_month = add_months(current_month, -(2 * SEASONAL_MONTHS - 1))
        result = await self._db.execute(
            select(
                Installment.paid_date,
                Installment.paid_amount,
                PaymentPlan.total_amount,
                PaymentPlan.expected_commission,
            )
            .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.status == "paid",
                Installment.generates_commission.is_(True),
                Installment.paid_date >= first_month,
                Installment.paid_date <= end_of_month(today),
            )
        )

        earned: dict[str, Decimal] = defaultdict(Decimal)
        for paid_date, paid_amount, total_amount, expected in result.all():
            earned[f"{paid_date:%Y-%m}"] += calculate_earned_commission(
                paid_amount, total_amount, expected
            )

        months: list[MonthlyCommission] = []
        for offset in range(SEASONAL_MONTHS - 1, -1, -1):
            month = add_months(current_month, -offset)
            key_month = f"{month:%Y-%m}"
            commission = round_money(earned.get(key_month, Decimal("0")))
            previous = earned.get(f"{add_months(month, -12):%Y-%m}")
            months.append(
                MonthlyCommission(
                    month=key_month,
                    commission=commission,
                    year_over_year_change=year_over_year_change(
                        commission, round_money(previous) if previous is not None else None
                    ),
                )
            )

        ranked = sorted(months, key=lambda m: m.commission, reverse=True)
        peak = {m.month for m in ranked[:SEASONAL_HIGHLIGHTS]}
        quiet = {m.month for m in ranked[-SEASONAL_HIGHLIGHTS:]}
        for item in months:
            item.is_peak = item.month in peak
            item.is_quiet = item.month in quiet

        await set_cached(
            self._agency_id,
            key,
            [m.model_dump(mode="json") for m in months],
            self._cache_ttl,
        )
        return months

    async def get_commission_by_country(
        self,
        period: CommissionPeriod = "all",
    ) -> list[CountryCommission]:
        """Top five student nationalities by commission earned in a period.

        Args:
            period: all, year, quarter or month, in the agency's calendar.

        Returns:
            Countries with their share of the period's commission and the
            trend against the previous period. Students without a
            nationality count as Unknown.
        """
        key = dashboard_key("commission_by_country", period)
        cached = await get_cached(self._agency_id, key)
        if cached is not None:
            return [CountryCommission.model_validate(item) for item in cached]

        current, previous = commission_period_windows(period, await self._today())
        stmt = (
            select(
                Student.nationality,
                Installment.paid_date,
                Installment.paid_amount,
                PaymentPlan.total_amount,
                PaymentPlan.expected_commission,
            )
            .join(PaymentPlan, PaymentPlan.id == Installment.payment_plan_id)
            .join(Enrollment, Enrollment.id == PaymentPlan.enrollment_id)
            .join(Student, Student.id == Enrollment.student_id)
            .where(
                Installment.agency_id == self._agency_id,
                Installment.status == "paid",
                Installment.generates_commission.is_(True),
                Installment.paid_date.is_not(None),
            )
        )
        if current is not None:
            stmt = stmt.where(
                Installment.paid_date >= previous[0],
                Installment.paid_date <= current[1],
            )
        result = await self._db.execute(stmt)

        current_totals: dict[str, Decimal] = defaultdict(Decimal)
        previous_totals: dict[str, Decimal] = defaultdict(Decimal)
        for nationality, paid_date, paid_amount, total_amount, expected in result.all():
            country = nationality or UNKNOWN_COUNTRY
            amount = calculate_earned_commission(paid_amount, total_amount, expected)
            if current is None or current[0] <= paid_date <= current[1]:
                current_totals[country] += amount
            if previous[0] <= paid_date <= previous[1]:
                previous_totals[country] += amount

        countries = sorted(
            set(current_totals) | set(previous_totals),
            key=lambda c: current_totals.get(c, Decimal("0")),
            reverse=True,
        )[:TOP_COUNTRIES]
        grand_total = sum(current_totals.values(), Decimal("0"))

        items: list[CountryCommission] = []
        for country in countries:
            amount = current_totals.get(country, Decimal("0"))
            share = amount / grand_total * 100 if grand_total > 0 else Decimal("0")
            items.append(
                CountryCommission(
                    country=country,
                    commission=round_money(amount),
                    percentage_share=round_percent(share),
                    trend=calculate_trend(amount, previous_totals.get(country, Decimal("0"))),
                )
            )

        await set_cached(
            self._agency_id,
            key,
            [c.model_dump(mode="json") for c in items],
            self._cache_ttl,
        )
        return items

    async def export_cash_flow_csv(
        self,
        days: int = 90,
        group_by: CashFlowGrouping = "week",
        user_id: str | None = None,
    ) -> CsvExport:
        """Export the cash flow projection with one row per installment.

        Bucket totals repeat on every row of the bucket so the file can be
        filtered in a spreadsheet without losing them.

        Raises:
            ValueError: If days is out of range.
        """
        projection = await self.get_cash_flow_projection(days=days, group_by=group_by)
        agency = await self._agency()
        currency = agency.currency if agency else "AUD"

        def money(value: Any) -> str:
            return format_currency(value, currency)

        rows: list[list[Any]] = [CASH_FLOW_CSV_HEADERS]
        installment_count = 0
        for bucket in projection.buckets:
            label = bucket_label(bucket.date_bucket, group_by)
            total = bucket.paid_amount + bucket.expected_amount
            for item in bucket.installments:
                rows.append(
                    [
                        label,
                        money(bucket.paid_amount),
                        money(bucket.expected_amount),
                        money(total),
                        bucket.installment_count,
                        item.student_name,
                        money(item.amount),
                        item.status.capitalize(),
                        f"{item.due_date:%b %d, %Y}",
                        item.college_name or "N/A",
                    ]
                )
                installment_count += 1

        stamp = agency_now(agency.timezone if agency else None).strftime("%Y-%m-%d")
        self._activity.log_activity(
            entity_type="report",
            entity_id=self._agency_id,
            action="exported",
            description=f"Exported cash flow projection ({installment_count} installments)",
            user_id=user_id,
            metadata={
                "report_type": "cash_flow_projection",
                "format": "csv",
                "days": days,
                "group_by": group_by,
                "row_count": installment_count,
            },
        )
        await self._db.commit()

        return CsvExport(
            filename=f"cash-flow-projection-{group_by}-{stamp}.csv",
            content=write_csv(rows),
            row_count=installment_count,
        )
