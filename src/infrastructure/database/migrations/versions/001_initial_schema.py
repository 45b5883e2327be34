# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial Pleeno schema.

Creates agency, entity, payment, notification and audit tables with their
check and uniqueness constraints.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-01-06
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _agency_id() -> sa.Column:
    return sa.Column(
        "agency_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("agencies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def _fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # =========================================================================
    # AGENCY DOMAIN
    # =========================================================================

    op.create_table(
        "agencies",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="AUD"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Australia/Brisbane"),
        sa.Column(
            "overdue_cutoff_time",
            sa.Time,
            nullable=False,
            server_default=sa.text("'17:00:00'"),
        ),
        sa.Column("due_soon_threshold_days", sa.Integer, nullable=False, server_default="4"),
        sa.Column("payment_instructions", sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "currency IN ('AUD', 'USD', 'EUR', 'GBP', 'NZD', 'CAD')",
            name="ck_agencies_currency_valid",
        ),
        sa.CheckConstraint(
            "due_soon_threshold_days BETWEEN 1 AND 30",
            name="ck_agencies_due_soon_threshold_range",
        ),
    )

    op.create_table(
        "users",
        _id(),
        _agency_id(),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="agency_user"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "email_notifications_enabled", sa.Boolean, nullable=False, server_default="false"
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('agency_admin', 'agency_user')", name="ck_users_role_valid"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'inactive', 'suspended')", name="ck_users_status_valid"
        ),
    )

    op.create_table(
        "invitations",
        _id(),
        _agency_id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("token", sa.String(64), unique=True, nullable=False),
        _fk("invited_by", "users.id", "SET NULL", nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('agency_admin', 'agency_user')", name="ck_invitations_role_valid"
        ),
    )
    op.create_index("ix_invitations_agency_email", "invitations", ["agency_id", "email"])

    # =========================================================================
    # ENTITIES DOMAIN
    # =========================================================================

    op.create_table(
        "colleges",
        _id(),
        _agency_id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("country", sa.String(120), nullable=True),
        sa.Column("default_commission_rate_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("gst_status", sa.String(10), nullable=False, server_default="included"),
        sa.Column("contract_expiration_date", sa.Date, nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("agency_id", "name", name="uq_colleges_agency_name"),
        sa.CheckConstraint(
            "default_commission_rate_percent IS NULL OR "
            "(default_commission_rate_percent >= 0 AND default_commission_rate_percent <= 100)",
            name="ck_colleges_commission_rate_range",
        ),
        sa.CheckConstraint(
            "gst_status IN ('included', 'excluded')", name="ck_colleges_gst_status_valid"
        ),
    )

    op.create_table(
        "branches",
        _id(),
        _agency_id(),
        _fk("college_id", "colleges.id", "CASCADE"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("commission_rate_percent", sa.Numeric(5, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "commission_rate_percent IS NULL OR "
            "(commission_rate_percent >= 0 AND commission_rate_percent <= 100)",
            name="ck_branches_commission_rate_range",
        ),
    )
    op.create_index("ix_branches_college_id", "branches", ["college_id"])

    op.create_table(
        "college_contacts",
        _id(),
        _agency_id(),
        _fk("college_id", "colleges.id", "CASCADE"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role_department", sa.String(255), nullable=True),
        sa.Column("position_title", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_college_contacts_college_id", "college_contacts", ["college_id"])

    op.create_table(
        "college_notes",
        _id(),
        _agency_id(),
        _fk("college_id", "colleges.id", "CASCADE"),
        _fk("user_id", "users.id", "SET NULL", nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "char_length(content) <= 2000", name="ck_college_notes_content_length"
        ),
    )
    op.create_index("ix_college_notes_college_id", "college_notes", ["college_id"])

    op.create_table(
        "students",
        _id(),
        _agency_id(),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("passport_number", sa.String(50), nullable=False),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        sa.Column("nationality", sa.String(100), nullable=True),
        sa.Column("visa_status", sa.String(20), nullable=True),
        _fk("assigned_user_id", "users.id", "SET NULL", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "agency_id", "passport_number", name="uq_students_agency_passport"
        ),
        sa.CheckConstraint(
            "visa_status IS NULL OR visa_status IN ('in_process', 'approved', 'denied', 'expired')",
            name="ck_students_visa_status_valid",
        ),
    )

    op.create_table(
        "student_notes",
        _id(),
        _agency_id(),
        _fk("student_id", "students.id", "CASCADE"),
        _fk("user_id", "users.id", "SET NULL", nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "char_length(content) <= 2000", name="ck_student_notes_content_length"
        ),
    )
    op.create_index("ix_student_notes_student_id", "student_notes", ["student_id"])

    op.create_table(
        "student_documents",
        _id(),
        _agency_id(),
        _fk("student_id", "students.id", "CASCADE"),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.Text, nullable=False),
        sa.Column("file_size", sa.BigInteger, nullable=False),
        sa.Column("content_type", sa.String(100), nullable=False),
        _fk("uploaded_by", "users.id", "SET NULL", nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "document_type IN ('offer_letter', 'passport', 'visa', 'other')",
            name="ck_student_documents_document_type_valid",
        ),
    )
    op.create_index("ix_student_documents_student_id", "student_documents", ["student_id"])

    op.create_table(
        "enrollments",
        _id(),
        _agency_id(),
        _fk("student_id", "students.id", "CASCADE"),
        _fk("branch_id", "branches.id", "RESTRICT"),
        sa.Column("program_name", sa.String(255), nullable=False),
        sa.Column("offer_letter_url", sa.Text, nullable=True),
        sa.Column("offer_letter_filename", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint(
            "student_id",
            "branch_id",
            "program_name",
            name="uq_enrollments_student_branch_program",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'cancelled')", name="ck_enrollments_status_valid"
        ),
    )
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    op.create_index("ix_enrollments_branch_id", "enrollments", ["branch_id"])

    # =========================================================================
    # PAYMENTS DOMAIN
    # =========================================================================

    op.create_table(
        "payment_plans",
        _id(),
        _agency_id(),
        _fk("enrollment_id", "enrollments.id", "CASCADE"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="AUD"),
        sa.Column("commission_rate_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("expected_commission", sa.Numeric(12, 2), nullable=True),
        sa.Column("earned_commission", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("total_course_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("initial_payment_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("initial_payment_due_date", sa.Date, nullable=True),
        sa.Column("initial_payment_paid", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("materials_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("admin_fees", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("other_fees", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("first_college_due_date", sa.Date, nullable=True),
        sa.Column("student_lead_time_days", sa.Integer, nullable=True),
        sa.Column("gst_inclusive", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("number_of_installments", sa.Integer, nullable=True),
        sa.Column("payment_frequency", sa.String(20), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="ck_payment_plans_total_amount_non_negative"),
        sa.CheckConstraint(
            "commission_rate_percent >= 0 AND commission_rate_percent <= 100",
            name="ck_payment_plans_commission_rate_range",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'cancelled')", name="ck_payment_plans_status_valid"
        ),
        sa.CheckConstraint(
            "materials_cost >= 0 AND admin_fees >= 0 AND other_fees >= 0",
            name="ck_payment_plans_fees_non_negative",
        ),
        sa.CheckConstraint(
            "payment_frequency IS NULL OR payment_frequency IN ('monthly', 'quarterly', 'custom')",
            name="ck_payment_plans_payment_frequency_valid",
        ),
        sa.CheckConstraint(
            "number_of_installments IS NULL OR number_of_installments > 0",
            name="ck_payment_plans_number_of_installments_positive",
        ),
    )
    op.create_index("ix_payment_plans_enrollment_id", "payment_plans", ["enrollment_id"])
    op.create_index("ix_payment_plans_agency_status", "payment_plans", ["agency_id", "status"])

    op.create_table(
        "installments",
        _id(),
        _agency_id(),
        _fk("payment_plan_id", "payment_plans.id", "CASCADE"),
        sa.Column("installment_number", sa.Integer, nullable=False),
        sa.Column("is_initial_payment", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("generates_commission", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("student_due_date", sa.Date, nullable=True),
        sa.Column("college_due_date", sa.Date, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("paid_date", sa.Date, nullable=True),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_notes", sa.Text, nullable=True),
        sa.Column("last_notified_date", sa.Date, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "payment_plan_id", "installment_number", name="uq_installments_plan_number"
        ),
        sa.CheckConstraint(
            "installment_number >= 0", name="ck_installments_installment_number_non_negative"
        ),
        sa.CheckConstraint("amount > 0", name="ck_installments_amount_positive"),
        sa.CheckConstraint(
            "paid_amount IS NULL OR paid_amount >= 0",
            name="ck_installments_paid_amount_non_negative",
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'due_soon', 'overdue', 'paid', 'partial', 'cancelled')",
            name="ck_installments_status_valid",
        ),
        sa.CheckConstraint(
            "(status = 'paid' AND paid_amount IS NOT NULL AND paid_date IS NOT NULL) OR "
            "(status != 'paid' AND status != 'partial' AND (paid_amount IS NULL OR paid_amount = 0)) OR "
            "(status = 'partial' AND paid_amount IS NOT NULL AND paid_date IS NOT NULL)",
            name="ck_installments_valid_paid_amount",
        ),
        sa.CheckConstraint(
            "payment_notes IS NULL OR char_length(payment_notes) <= 500",
            name="ck_installments_payment_notes_length",
        ),
    )
    op.create_index("ix_installments_payment_plan_id", "installments", ["payment_plan_id"])
    op.create_index(
        "ix_installments_status_due",
        "installments",
        ["agency_id", "status", "student_due_date"],
        postgresql_where=sa.text("status IN ('pending', 'overdue')"),
    )

    # =========================================================================
    # NOTIFICATIONS DOMAIN
    # =========================================================================

    op.create_table(
        "email_templates",
        _id(),
        _agency_id(),
        sa.Column("template_type", sa.String(100), nullable=False),
        sa.Column("subject", sa.Text, nullable=False),
        sa.Column("body_html", sa.Text, nullable=False),
        sa.Column(
            "variables",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        *_timestamps(),
    )

    op.create_table(
        "notification_rules",
        _id(),
        _agency_id(),
        sa.Column("recipient_type", sa.String(20), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default="false"),
        _fk("template_id", "email_templates.id", "SET NULL", nullable=True),
        sa.Column(
            "trigger_config",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "agency_id",
            "recipient_type",
            "event_type",
            name="uq_notification_rules_agency_event",
        ),
        sa.CheckConstraint(
            "recipient_type IN ('agency_user', 'student', 'college', 'sales_agent')",
            name="ck_notification_rules_recipient_type_valid",
        ),
        sa.CheckConstraint(
            "event_type IN ('overdue', 'due_soon', 'payment_received')",
            name="ck_notification_rules_event_type_valid",
        ),
    )

    op.create_table(
        "notification_log",
        _id(),
        _fk("installment_id", "installments.id", "CASCADE"),
        sa.Column("recipient_type", sa.String(20), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False),
        sa.Column(
            "sent_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        _fk("template_id", "email_templates.id", "SET NULL", nullable=True),
        sa.Column("email_subject", sa.Text, nullable=True),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.UniqueConstraint(
            "installment_id",
            "recipient_type",
            "recipient_email",
            "event_type",
            name="uq_notification_log_dedup",
        ),
        sa.CheckConstraint(
            "recipient_type IN ('agency_user', 'student', 'college', 'sales_agent')",
            name="ck_notification_log_recipient_type_valid",
        ),
        sa.CheckConstraint(
            "event_type IN ('overdue', 'due_soon', 'payment_received')",
            name="ck_notification_log_event_type_valid",
        ),
    )
    op.create_index("ix_notification_log_installment_id", "notification_log", ["installment_id"])

    op.create_table(
        "notifications",
        _id(),
        _agency_id(),
        _fk("user_id", "users.id", "CASCADE", nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("link", sa.Text, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "type IN ('overdue_payment', 'due_soon', 'payment_received', 'system')",
            name="ck_notifications_type_valid",
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    # =========================================================================
    # AUDIT AND JOBS
    # =========================================================================

    op.create_table(
        "activity_log",
        _id(),
        _agency_id(),
        _fk("user_id", "users.id", "SET NULL", nullable=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "entity_type IN ('payment', 'payment_plan', 'student', 'enrollment', 'installment', "
            "'report', 'college', 'branch', 'agency', 'user')",
            name="ck_activity_log_entity_type_valid",
        ),
        sa.CheckConstraint(
            "action IN ('created', 'recorded', 'updated', 'marked_overdue', 'deleted', 'exported')",
            name="ck_activity_log_action_valid",
        ),
    )
    op.create_index("ix_activity_log_created_at", "activity_log", ["created_at"])
    op.create_index("ix_activity_log_entity", "activity_log", ["entity_type", "entity_id"])

    op.create_table(
        "jobs_log",
        _id(),
        sa.Column("job_name", sa.String(100), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("records_updated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'failed')", name="ck_jobs_log_status_valid"
        ),
    )
    op.create_index("ix_jobs_log_job_name", "jobs_log", ["job_name", "started_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        "jobs_log",
        "activity_log",
        "notifications",
        "notification_log",
        "notification_rules",
        "email_templates",
        "installments",
        "payment_plans",
        "enrollments",
        "student_documents",
        "student_notes",
        "students",
        "college_notes",
        "college_contacts",
        "branches",
        "colleges",
        "invitations",
        "users",
        "agencies",
    ):
        op.drop_table(table)
