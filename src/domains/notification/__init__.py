# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification domain.

Exports:
    NotificationDispatcher: Rule-driven email dispatch with deduplication.
    InAppNotificationService: Notification bell entries.
    OverdueReminderService: Overdue reminders sent by staff, with a cooldown.
    NotificationRuleService: Agency notification rules.
    EmailTemplateService: Agency email templates and previews.
"""

from src.domains.notification.dispatcher import NotificationDispatcher
from src.domains.notification.in_app import InAppNotificationService
from src.domains.notification.reminders import OverdueReminderService
from src.domains.notification.rules import EmailTemplateService, NotificationRuleService

__all__ = [
    "EmailTemplateService",
    "InAppNotificationService",
    "NotificationDispatcher",
    "NotificationRuleService",
    "OverdueReminderService",
]
