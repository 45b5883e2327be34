# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    auth: Authentication endpoints (login, refresh, me).
    agencies: Current agency profile and notification settings.
    users: User management endpoints (profile, role, status).
    invitations: Invitation endpoints (invite, resend, accept).
    colleges: College, branch, contact and note endpoints.
    branches: Branch endpoints.
    students: Student, note, document and import endpoints.
    enrollments: Enrollment and offer letter endpoints.
    payment_plans: Payment plan and installment schedule endpoints.
    installments: Installment and payment recording endpoints.
    notification_rules: Notification rule and email template endpoints.
    notifications: In-app notification endpoints.
    activity: Activity feed endpoint.
    dashboard: Dashboard widget endpoints.
    reports: Commission and payment plan report endpoints.
    jobs: Scheduled job endpoints (X-API-Key).
"""

from fastapi import APIRouter

from src.api.v1 import (
    activity,
    agencies,
    auth,
    branches,
    colleges,
    dashboard,
    enrollments,
    installments,
    invitations,
    jobs,
    notification_rules,
    notifications,
    payment_plans,
    reports,
    students,
    users,
)

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(agencies.router, prefix="/agencies", tags=["Agencies"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
router.include_router(colleges.router, prefix="/colleges", tags=["Colleges"])
router.include_router(branches.router, prefix="/branches", tags=["Branches"])
router.include_router(students.router, prefix="/students", tags=["Students"])
router.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollments"])
router.include_router(payment_plans.router, prefix="/payment-plans", tags=["Payment Plans"])
router.include_router(installments.router, prefix="/installments", tags=["Installments"])
router.include_router(
    notification_rules.router, prefix="/notification-settings", tags=["Notification Settings"]
)
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(activity.router, prefix="/activity", tags=["Activity"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])

# Scheduler endpoints (API key instead of JWT)
router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])

__all__ = ["router"]
