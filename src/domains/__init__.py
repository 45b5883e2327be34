# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for Pleeno.

This package contains domain services that encapsulate business logic.
Every service is constructed with a session and the caller's agency_id.

Domains:
    auth: Login, token refresh and password hashing.
    agency: Agency settings.
    user: Staff profiles and invitations.
    college: Colleges, branches, contacts and notes.
    student: Students, notes, documents and CSV import.
    enrollment: Student enrollments at college branches.
    payments: Payment plans, installment schedules and commissions.
    notification: Notification rules, templates, dispatch and in-app feed.
    dashboard: KPIs and cached dashboard widgets.
    reports: Commission reports and payment plan exports.
    activity: Activity feed.
    jobs: Installment status and due soon jobs.
"""
