# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Row level security for agency isolation.

Every tenant-owned table gets a policy that restricts rows to the agency
stored in the app.current_agency_id setting. The owning role (used by
migrations, sign in and scheduled jobs) bypasses RLS, so jobs scope their
queries by agency_id explicitly. Agency scoped request transactions switch
to the restricted pleeno_app role via set_agency_context().

notification_log has no agency_id column and is scoped through its
installment.

Revision ID: 002_row_level_security
Revises: 001_initial_schema
Create Date: 2025-01-06
"""

from typing import Sequence, Union

from alembic import op

revision: str = "002_row_level_security"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AGENCY_SCOPED_TABLES = (
    "users",
    "invitations",
    "colleges",
    "branches",
    "college_contacts",
    "college_notes",
    "students",
    "student_notes",
    "student_documents",
    "enrollments",
    "payment_plans",
    "installments",
    "email_templates",
    "notification_rules",
    "notifications",
    "activity_log",
)

APP_ROLE = "pleeno_app"


def upgrade() -> None:
    """Enable RLS and create agency isolation policies."""
    op.execute(
        """
        CREATE OR REPLACE FUNCTION current_agency_id() RETURNS uuid
        LANGUAGE plpgsql STABLE AS $$
        DECLARE
            agency_id_text text;
        BEGIN
            agency_id_text := current_setting('app.current_agency_id', true);
            IF agency_id_text IS NULL OR agency_id_text = '' THEN
                RETURN NULL;
            END IF;
            RETURN agency_id_text::uuid;
        EXCEPTION WHEN others THEN
            RETURN NULL;
        END;
        $$
        """
    )

    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{APP_ROLE}') THEN
                CREATE ROLE {APP_ROLE} NOLOGIN;
            END IF;
        END
        $$
        """
    )
    op.execute(f"GRANT {APP_ROLE} TO CURRENT_USER")
    op.execute(f"GRANT USAGE ON SCHEMA public TO {APP_ROLE}")
    op.execute(
        f"GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO {APP_ROLE}"
    )

    op.execute("ALTER TABLE agencies ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY agency_isolation ON agencies "
        "USING (id = current_agency_id()) "
        "WITH CHECK (id = current_agency_id())"
    )

    for table in AGENCY_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY agency_isolation ON {table} "
            "USING (agency_id = current_agency_id()) "
            "WITH CHECK (agency_id = current_agency_id())"
        )

    op.execute("ALTER TABLE notification_log ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY agency_isolation ON notification_log "
        "USING (installment_id IN "
        "(SELECT id FROM installments WHERE agency_id = current_agency_id()))"
    )


def downgrade() -> None:
    """Drop policies and disable RLS."""
    op.execute("DROP POLICY IF EXISTS agency_isolation ON notification_log")
    op.execute("ALTER TABLE notification_log DISABLE ROW LEVEL SECURITY")

    for table in reversed(AGENCY_SCOPED_TABLES):
        op.execute(f"DROP POLICY IF EXISTS agency_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.execute("DROP POLICY IF EXISTS agency_isolation ON agencies")
    op.execute("ALTER TABLE agencies DISABLE ROW LEVEL SECURITY")
    op.execute("DROP FUNCTION IF EXISTS current_agency_id()")
    op.execute(
        f"REVOKE SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public FROM {APP_ROLE}"
    )
    op.execute(f"REVOKE USAGE ON SCHEMA public FROM {APP_ROLE}")
