# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard widget endpoints.

All figures use the agency's local calendar and are cached briefly in Redis.

- GET /kpis
- GET /due-soon-count
- GET /payment-status-summary
- GET /overdue-payments
- POST /overdue-payments/send-reminder - Email the student, once per 24 hours
- GET /cash-flow-projection?days=90&group_by=week
- GET /cash-flow-projection/export - Same as CSV
- GET /commission-by-college
- GET /commission-by-country?period=all
- GET /seasonal-commission
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, get_app_settings, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.responses import csv_response
from src.core.config import Settings
from src.domains.dashboard.service import DashboardService
from src.domains.notification.reminders import OverdueReminderService
from src.infrastructure.notifications.channels import EmailChannel
from src.models.dashboard import (
    CashFlowGrouping,
    CashFlowProjection,
    CollegeCommission,
    CommissionPeriod,
    CountryCommission,
    DashboardKPIs,
    DueSoonCount,
    MonthlyCommission,
    OverduePayment,
    PaymentStatusSummary,
)
from src.models.notification import OverdueReminderRequest, OverdueReminderResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_dashboard_service(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> DashboardService:
    return DashboardService(
        db,
        current_user.agency_id,
        cache_ttl=settings.redis.dashboard_ttl_seconds,
    )


Dashboard = Annotated[DashboardService, Depends(get_dashboard_service)]


@router.get("/kpis", response_model=DashboardKPIs, summary="Key metrics with trends")
async def get_kpis(service: Dashboard) -> DashboardKPIs:
    return await service.get_kpis()


@router.get(
    "/due-soon-count",
    response_model=DueSoonCount,
    summary="Installments due within the agency threshold",
)
async def get_due_soon_count(service: Dashboard) -> DueSoonCount:
    return await service.get_due_soon_count()


@router.get(
    "/payment-status-summary",
    response_model=PaymentStatusSummary,
    summary="Installment counts and totals by status",
)
async def get_payment_status_summary(service: Dashboard) -> PaymentStatusSummary:
    return await service.get_payment_status_summary()


@router.get(
    "/overdue-payments",
    response_model=list[OverduePayment],
    summary="Overdue installments, most overdue first",
)
async def get_overdue_payments(service: Dashboard) -> list[OverduePayment]:
    return await service.get_overdue_payments()


@router.get(
    "/cash-flow-projection",
    response_model=CashFlowProjection,
    summary="Expected and received amounts over the coming days",
)
async def get_cash_flow_projection(
    service: Dashboard,
    days: Annotated[int, Query(ge=1, le=365)] = 90,
    group_by: Annotated[CashFlowGrouping, Query()] = "week",
) -> CashFlowProjection:
    return await service.get_cash_flow_projection(days=days, group_by=group_by)


@router.get(
    "/commission-by-college",
    response_model=list[CollegeCommission],
    summary="Earned and outstanding commission per college",
)
async def get_commission_by_college(service: Dashboard) -> list[CollegeCommission]:
    return await service.get_commission_by_college()


@router.get(
    "/commission-by-country",
    response_model=list[CountryCommission],
    summary="Top student nationalities by earned commission",
)
async def get_commission_by_country(
    service: Dashboard,
    period: Annotated[CommissionPeriod, Query()] = "all",
) -> list[CountryCommission]:
    return await service.get_commission_by_country(period=period)


@router.get(
    "/seasonal-commission",
    response_model=list[MonthlyCommission],
    summary="Monthly commission over the last year with peak and quiet months",
)
async def get_seasonal_commission(service: Dashboard) -> list[MonthlyCommission]:
    return await service.get_seasonal_commission()


@router.get(
    "/cash-flow-projection/export",
    summary="Export the cash flow projection as CSV",
    response_class=Response,
)
async def export_cash_flow_projection(
    service: Dashboard,
    days: Annotated[int, Query(ge=1, le=365)] = 90,
    group_by: Annotated[CashFlowGrouping, Query()] = "week",
    current_user: CurrentUser = Depends(require_auth),
) -> Response:
    export = await service.export_cash_flow_csv(
        days=days, group_by=group_by, user_id=current_user.id
    )
    logger.info("Cash flow projection exported by %s: %d rows", current_user.id, export.row_count)
    return csv_response(export.content, export.filename)


@router.post(
    "/overdue-payments/send-reminder",
    response_model=OverdueReminderResponse,
    summary="Email an overdue payment reminder to the student",
    description=(
        "Sends at most one reminder per installment and student every 24 hours. "
        "Within the cooldown the response has success false and nothing is sent."
    ),
)
async def send_overdue_reminder(
    data: OverdueReminderRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    settings: Settings = Depends(get_app_settings),
) -> OverdueReminderResponse:
    service = OverdueReminderService(
        db,
        current_user.agency_id,
        EmailChannel(settings.email),
        settings.api.public_url,
    )
    return await service.send_reminder(
        data.installment_id, data.student_id, user_id=current_user.id
    )
