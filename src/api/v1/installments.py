# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment endpoints.

- GET /{installment_id} - Installment details
- POST /{installment_id}/record-payment - Record a payment
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, require_auth
from src.api.middleware.auth import CurrentUser
from src.domains.payments.installments import InstallmentService
from src.models.payment import InstallmentResponse, RecordPaymentRequest, RecordPaymentResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{installment_id}",
    response_model=InstallmentResponse,
    summary="Get installment",
)
async def get_installment(
    installment_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> InstallmentResponse:
    return await InstallmentService(db, current_user.agency_id).get_installment(installment_id)


@router.post(
    "/{installment_id}/record-payment",
    response_model=RecordPaymentResponse,
    summary="Record payment",
    description=(
        "Record a payment against an installment. The amount may not exceed 110% "
        "of the installment and the date may not be in the future."
    ),
)
async def record_payment(
    installment_id: str,
    data: RecordPaymentRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
) -> RecordPaymentResponse:
    service = InstallmentService(db, current_user.agency_id)
    return await service.record_payment(installment_id, data, user_id=current_user.id)
