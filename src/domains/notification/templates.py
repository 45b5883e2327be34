# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email template rendering.

Templates use {{variable}} placeholders. Known variables are replaced,
unknown ones are left as written so mistakes are visible in previews.
"""

import html
import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from src.utils.money import format_currency

PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")

TEMPLATE_VARIABLES: dict[str, str] = {
    "student_name": "Student full name",
    "student_email": "Student email",
    "student_phone": "Student phone",
    "amount": "Installment amount in the agency currency",
    "due_date": "Student due date",
    "college_name": "College name",
    "branch_name": "Branch name",
    "agency_name": "Agency name",
    "agency_email": "Agency contact email",
    "agency_phone": "Agency contact phone",
    "payment_instructions": "Agency payment instructions",
    "view_link": "Link to the installment in Pleeno",
}

SAMPLE_VARIABLES: dict[str, str] = {
    "student_name": "John Doe",
    "student_email": "john.doe@example.com",
    "student_phone": "0400 123 456",
    "amount": "$1,500.00 AUD",
    "due_date": "15 May 2025",
    "college_name": "Example University",
    "branch_name": "Brisbane Campus",
    "agency_name": "Education Agency",
    "agency_email": "contact@agency.com",
    "agency_phone": "1300 123 456",
    "payment_instructions": "Bank transfer to BSB 123-456, Account 12345678",
    "view_link": "https://app.pleeno.com/payments/12345",
}

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class DefaultTemplate:
    """Built-in subject and body for an event without an agency template."""

    subject: str
    body_html: str


_DETAILS = (
    "<p><strong>Student:</strong> {{student_name}}</p>"
    "<p><strong>Amount:</strong> {{amount}}</p>"
    "<p><strong>Due Date:</strong> {{due_date}}</p>"
    "<p><strong>College:</strong> {{college_name}}</p>"
    "<p><strong>Payment Instructions:</strong><br/>{{payment_instructions}}</p>"
    '<p><a href="{{view_link}}">View Details</a></p>'
)

DEFAULT_TEMPLATES: dict[str, DefaultTemplate] = {
    "overdue": DefaultTemplate(
        subject="Payment Reminder: {{student_name}} - {{amount}} overdue",
        body_html="<p>This is a reminder that a payment installment is overdue.</p>" + _DETAILS,
    ),
    "due_soon": DefaultTemplate(
        subject="Upcoming Payment: {{student_name}} - {{amount}} due {{due_date}}",
        body_html="<p>This is a reminder that a payment installment is due soon.</p>" + _DETAILS,
    ),
    "payment_received": DefaultTemplate(
        subject="Payment Received: {{student_name}} - {{amount}}",
        body_html="<p>A payment has been received. Thank you.</p>" + _DETAILS,
    ),
}


def render_template(template: str, variables: dict[str, Any], escape: bool = False) -> str:
    """Replace {{variable}} placeholders.

    Args:
        template: Text with placeholders.
        variables: Values by variable name. None renders as an empty string.
        escape: HTML-escape substituted values.

    Returns:
        Rendered text. Placeholders without a value are kept unchanged.

    Example:
        >>> render_template("Hi {{student_name}} {{unknown}}", {"student_name": "Ana"})
        'Hi Ana {{unknown}}'
    """

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        text = "" if value is None else str(value)
        return html.escape(text) if escape else text

    return PLACEHOLDER_RE.sub(replace, template)


def render_email(
    event_type: str,
    variables: dict[str, Any],
    subject: str | None = None,
    body_html: str | None = None,
) -> tuple[str, str]:
    """Render a subject and HTML body, falling back to the event default.

    Args:
        event_type: overdue, due_soon or payment_received.
        variables: Template variables.
        subject: Agency template subject, if any.
        body_html: Agency template body, if any.

    Returns:
        Tuple of (subject, body_html).
    """
    default = DEFAULT_TEMPLATES[event_type]
    rendered_subject = render_template(subject or default.subject, variables)
    rendered_body = render_template(body_html or default.body_html, variables, escape=True)
    return rendered_subject, rendered_body


def format_due_date(value: date | None) -> str:
    """Format a due date the way emails show it, e.g. 5 March 2025."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value.day} {value.strftime('%B %Y')}"


def build_template_variables(
    installment,
    student,
    college,
    branch,
    agency,
    public_url: str,
) -> dict[str, str]:
    """Collect the template variables for one installment.

    Args:
        installment: Installment row.
        student: Student of the plan's enrollment.
        college: College of the enrollment branch.
        branch: Enrollment branch.
        agency: Owning agency.
        public_url: Base URL of the web app.

    Returns:
        Variables keyed by placeholder name.
    """
    currency = installment.payment_plan.currency if installment.payment_plan else agency.currency
    return {
        "student_name": student.full_name if student else NOT_AVAILABLE,
        "student_email": (student.email if student else None) or NOT_AVAILABLE,
        "student_phone": (student.phone if student else None) or NOT_AVAILABLE,
        "amount": format_currency(installment.amount, currency or "AUD"),
        "due_date": format_due_date(installment.student_due_date),
        "college_name": college.name if college else NOT_AVAILABLE,
        "branch_name": branch.name if branch else NOT_AVAILABLE,
        "agency_name": agency.name,
        "agency_email": agency.contact_email or NOT_AVAILABLE,
        "agency_phone": agency.contact_phone or NOT_AVAILABLE,
        "payment_instructions": agency.payment_instructions or "",
        "view_link": f"{public_url.rstrip('/')}/payments/{installment.id}",
    }
