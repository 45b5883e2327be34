# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for the shared Pleeno database.

Every tenant-owned table carries agency_id and is protected by a row level
security policy created in the initial migration.
"""

from src.infrastructure.database.models.agency import Agency, Invitation, User
from src.infrastructure.database.models.audit import ActivityLog, JobLog
from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from src.infrastructure.database.models.college import (
    Branch,
    College,
    CollegeContact,
    CollegeNote,
)
from src.infrastructure.database.models.notification import (
    EmailTemplate,
    Notification,
    NotificationLog,
    NotificationRule,
    StudentNotification,
)
from src.infrastructure.database.models.payment import Installment, PaymentPlan
from src.infrastructure.database.models.student import (
    Enrollment,
    Student,
    StudentDocument,
    StudentNote,
)

__all__ = [
    # Base
    "Base",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    "AgencyScopedMixin",
    # Agency
    "Agency",
    "User",
    "Invitation",
    # Entities
    "College",
    "Branch",
    "CollegeContact",
    "CollegeNote",
    "Student",
    "StudentNote",
    "StudentDocument",
    "Enrollment",
    # Payments
    "PaymentPlan",
    "Installment",
    # Notifications
    "NotificationRule",
    "EmailTemplate",
    "NotificationLog",
    "Notification",
    "StudentNotification",
    # Audit
    "ActivityLog",
    "JobLog",
]
