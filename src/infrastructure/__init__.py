# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients and managers for:
- Database connections (PostgreSQL with row level security)
- Cache (Redis)
- Background task processing (Dramatiq)
- Notifications (SMTP and Resend email)
"""
