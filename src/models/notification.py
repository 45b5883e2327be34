# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification rule, email template and in-app notification schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RecipientType = Literal["agency_user", "student", "college", "sales_agent"]
EventType = Literal["overdue", "due_soon", "payment_received"]
InAppType = Literal["overdue_payment", "due_soon", "payment_received", "system"]


class TriggerConfig(BaseModel):
    """When a rule fires relative to the due date."""

    advance_hours: int | None = Field(default=None, ge=0, le=24 * 30)
    trigger_time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    timezone: str | None = None


class NotificationRuleCreateRequest(BaseModel):
    """Create a notification rule."""

    recipient_type: RecipientType
    event_type: EventType
    is_enabled: bool = True
    template_id: str | None = None
    trigger_config: TriggerConfig = Field(default_factory=TriggerConfig)


class NotificationRuleUpdateRequest(BaseModel):
    """Partial update of a notification rule."""

    is_enabled: bool | None = None
    template_id: str | None = None
    trigger_config: TriggerConfig | None = None


class NotificationRuleBatchRequest(BaseModel):
    """Create or update several rules at once, keyed on recipient and event."""

    rules: list[NotificationRuleCreateRequest] = Field(min_length=1, max_length=12)


class NotificationRuleResponse(BaseModel):
    """Notification rule."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    recipient_type: RecipientType
    event_type: EventType
    is_enabled: bool
    template_id: str | None = None
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class EmailTemplateCreateRequest(BaseModel):
    """Create an email template."""

    template_type: str = Field(min_length=1, max_length=100)
    subject: str = Field(min_length=1, max_length=500)
    body_html: str = Field(min_length=1)
    variables: dict[str, Any] = Field(default_factory=dict)


class EmailTemplateUpdateRequest(BaseModel):
    """Partial update of an email template."""

    template_type: str | None = Field(default=None, min_length=1, max_length=100)
    subject: str | None = Field(default=None, min_length=1, max_length=500)
    body_html: str | None = Field(default=None, min_length=1)
    variables: dict[str, Any] | None = None


class EmailTemplateResponse(BaseModel):
    """Email template."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    template_type: str
    subject: str
    body_html: str
    variables: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class EmailTemplatePreviewRequest(BaseModel):
    """Variables to render a template preview with."""

    variables: dict[str, Any] = Field(default_factory=dict)


class EmailTemplatePreviewResponse(BaseModel):
    """Rendered template."""

    subject: str
    body_html: str


class NotificationResponse(BaseModel):
    """In-app notification."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    type: InAppType
    message: str
    link: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Paginated in-app notifications with unread count."""

    items: list[NotificationResponse]
    total: int
    unread_count: int
    limit: int
    offset: int


class DispatchResult(BaseModel):
    """Outcome of one email send attempt."""

    installment_id: str
    recipient_type: RecipientType
    recipient_email: str
    status: Literal["sent", "failed", "skipped"]
    error: str | None = None


class DispatchSummary(BaseModel):
    """Outcome of a notification dispatch run."""

    event_type: EventType
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[DispatchResult] = Field(default_factory=list)


class OverdueReminderRequest(BaseModel):
    """Send an overdue payment reminder to a student."""

    installment_id: str = Field(min_length=1)
    student_id: str = Field(min_length=1)


class OverdueReminderResponse(BaseModel):
    """Outcome of a manual reminder. success is False while the cooldown runs."""

    success: bool
    message: str
    message_id: str | None = None
    sent_to: str | None = None
    hours_since_last_send: int | None = None
