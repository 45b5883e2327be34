# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Report endpoints.

- GET /commissions - Commission by branch for a date range
- GET /commissions/export - Same as CSV
- POST /payment-plans - Filtered payment plans report
- POST /payment-plans/export - Same as CSV with selectable columns
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import RATE_LIMIT_EXPORT, limiter
from src.api.responses import csv_response
from src.core.errors import ValidationError
from src.domains.reports.service import ReportService
from src.models.report import (
    CommissionReportRequest,
    CommissionReportResponse,
    PaymentPlansExportRequest,
    PaymentPlansReportRequest,
    PaymentPlansReportResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def commission_report_request(
    date_from: Annotated[date, Query(description="First student due date")],
    date_to: Annotated[date, Query(description="Last student due date")],
    city: Annotated[str | None, Query(description="Branch city")] = None,
) -> CommissionReportRequest:
    """Build the commission report filters from query parameters.

    A date_from after date_to raises a pydantic ValidationError, reported as 400.
    """
    return CommissionReportRequest(date_from=date_from, date_to=date_to, city=city)


@router.get(
    "/commissions",
    response_model=CommissionReportResponse,
    summary="Commission report",
    description="Earned and outstanding commission per branch, with plan drill-down.",
)
async def get_commission_report(
    filters: CommissionReportRequest = Depends(commission_report_request),
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> CommissionReportResponse:
    return await ReportService(db, current_user.agency_id).get_commission_report(filters)


@router.get(
    "/commissions/export",
    summary="Export commission report as CSV",
    response_class=Response,
)
@limiter.limit(RATE_LIMIT_EXPORT)
async def export_commission_report(
    request: Request,
    filters: CommissionReportRequest = Depends(commission_report_request),
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> Response:
    service = ReportService(db, current_user.agency_id)
    export = await service.export_commission_report_csv(filters, user_id=current_user.id)
    logger.info("Commission report exported by %s: %d rows", current_user.id, export.row_count)
    return csv_response(export.content, export.filename)


@router.post(
    "/payment-plans",
    response_model=PaymentPlansReportResponse,
    summary="Payment plans report",
)
async def get_payment_plans_report(
    data: PaymentPlansReportRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentPlansReportResponse:
    return await ReportService(db, current_user.agency_id).get_payment_plans_report(data)


@router.post(
    "/payment-plans/export",
    summary="Export payment plans report as CSV",
    response_class=Response,
)
@limiter.limit(RATE_LIMIT_EXPORT)
async def export_payment_plans_report(
    request: Request,
    data: PaymentPlansExportRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> Response:
    service = ReportService(db, current_user.agency_id)
    filters = PaymentPlansReportRequest.model_validate(data.model_dump(exclude={"columns"}))
    try:
        export = await service.export_payment_plans_csv(
            filters,
            columns=data.columns,
            user_id=current_user.id,
        )
    except ValueError as e:
        raise ValidationError(str(e), details={"field": "columns"})
    return csv_response(export.content, export.filename)
