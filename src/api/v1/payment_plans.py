# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment plan endpoints.

- POST /schedule - Generate an installment schedule without saving
- POST / - Create a plan with its installments
- GET / - List plans filtered by status, student or college
- GET /{plan_id} - Plan with installments
- PATCH /{plan_id} - Notes, reference and status
- GET /{plan_id}/installments - Installments of a plan
- POST /{plan_id}/installments/preview - Regenerate a schedule for a plan

Example:
    POST /api/v1/payment-plans/schedule
    {
        "total_course_value": 12000,
        "commission_rate": 0.15,
        "number_of_installments": 4,
        "payment_frequency": "quarterly",
        "first_college_due_date": "2025-02-01",
        "student_lead_time_days": 14
    }
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.payments.plans import PaymentPlanService
from src.domains.payments.schedule import generate_installment_schedule
from src.models.payment import (
    InstallmentResponse,
    InstallmentScheduleRequest,
    InstallmentScheduleResponse,
    PaymentPlanCreateRequest,
    PaymentPlanListResponse,
    PaymentPlanResponse,
    PaymentPlanUpdateRequest,
    PlanStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_plan_service(db: AsyncSession, current_user: CurrentUser) -> PaymentPlanService:
    return PaymentPlanService(db, current_user.agency_id)


@router.post(
    "/schedule",
    response_model=InstallmentScheduleResponse,
    summary="Preview installment schedule",
    description="Run the schedule calculator for the plan wizard. Nothing is saved.",
)
async def preview_schedule(
    data: InstallmentScheduleRequest,
    current_user: CurrentUser = Depends(require_auth),
) -> InstallmentScheduleResponse:
    return generate_installment_schedule(data)


@router.post(
    "",
    response_model=PaymentPlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payment plan",
    description=(
        "Create a plan for an enrollment. Commission rate and currency default "
        "from the branch and agency. Installments must add up to the total."
    ),
)
async def create_payment_plan(
    data: PaymentPlanCreateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentPlanResponse:
    logger.info("Creating payment plan for enrollment %s by %s", data.enrollment_id, current_user.id)
    service = _get_plan_service(db, current_user)
    return await service.create_payment_plan(data, user_id=current_user.id)


@router.get(
    "",
    response_model=PaymentPlanListResponse,
    summary="List payment plans",
)
async def list_payment_plans(
    plan_status: Annotated[PlanStatus | None, Query(alias="status")] = None,
    student_id: Annotated[str | None, Query()] = None,
    college_id: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentPlanListResponse:
    service = _get_plan_service(db, current_user)
    plans, total = await service.list_payment_plans(
        status=plan_status,
        student_id=student_id,
        college_id=college_id,
        limit=limit,
        offset=offset,
    )
    return PaymentPlanListResponse(items=plans, total=total, limit=limit, offset=offset)


@router.get(
    "/{plan_id}",
    response_model=PaymentPlanResponse,
    summary="Get payment plan",
)
async def get_payment_plan(
    plan_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentPlanResponse:
    return await _get_plan_service(db, current_user).get_payment_plan(plan_id)


@router.patch(
    "/{plan_id}",
    response_model=PaymentPlanResponse,
    summary="Update payment plan",
    description="Cancelling a plan also cancels its unpaid installments.",
)
async def update_payment_plan(
    plan_id: str,
    data: PaymentPlanUpdateRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> PaymentPlanResponse:
    service = _get_plan_service(db, current_user)
    return await service.update_payment_plan(plan_id, data, user_id=current_user.id)


@router.get(
    "/{plan_id}/installments",
    response_model=list[InstallmentResponse],
    summary="List plan installments",
)
async def list_installments(
    plan_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> list[InstallmentResponse]:
    return await _get_plan_service(db, current_user).list_installments(plan_id)


@router.post(
    "/{plan_id}/installments/preview",
    response_model=InstallmentScheduleResponse,
    summary="Preview installments for a plan",
)
async def preview_installments(
    plan_id: str,
    data: InstallmentScheduleRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> InstallmentScheduleResponse:
    return await _get_plan_service(db, current_user).preview_installments(plan_id, data)
