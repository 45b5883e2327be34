# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment plan and installment models.

A payment plan belongs to an enrollment and is split into installments.
Installment 0 is the optional initial payment. Installment status moves
draft -> pending -> (overdue) -> paid / partial, or cancelled.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    AgencyScopedMixin,
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from src.infrastructure.database.models.student import Enrollment

PLAN_STATUSES = ("active", "completed", "cancelled")
INSTALLMENT_STATUSES = ("draft", "pending", "due_soon", "overdue", "paid", "partial", "cancelled")
PAYMENT_FREQUENCIES = ("monthly", "quarterly", "custom")


class PaymentPlan(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Tuition payment plan with expected and earned commission."""

    __tablename__ = "payment_plans"

    enrollment_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="AUD")
    commission_rate_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    expected_commission: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    earned_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default="0"
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="active")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Installment wizard inputs
    total_course_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    initial_payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    initial_payment_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    initial_payment_paid: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    materials_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default="0"
    )
    admin_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    other_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    first_college_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    student_lead_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gst_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    number_of_installments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_frequency: Mapped[str | None] = mapped_column(String(20), nullable=True)

    enrollment: Mapped[Enrollment] = relationship()
    installments: Mapped[list["Installment"]] = relationship(
        back_populates="payment_plan",
        cascade="all, delete-orphan",
        order_by="Installment.installment_number",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="total_amount_non_negative"),
        CheckConstraint(
            "commission_rate_percent >= 0 AND commission_rate_percent <= 100",
            name="commission_rate_range",
        ),
        CheckConstraint("status IN ('active', 'completed', 'cancelled')", name="status_valid"),
        CheckConstraint(
            "materials_cost >= 0 AND admin_fees >= 0 AND other_fees >= 0",
            name="fees_non_negative",
        ),
        CheckConstraint(
            "payment_frequency IS NULL OR payment_frequency IN ('monthly', 'quarterly', 'custom')",
            name="payment_frequency_valid",
        ),
        CheckConstraint(
            "number_of_installments IS NULL OR number_of_installments > 0",
            name="number_of_installments_positive",
        ),
    )


class Installment(Base, UUIDPrimaryKeyMixin, TimestampMixin, AgencyScopedMixin):
    """Single scheduled payment of a plan."""

    __tablename__ = "installments"

    payment_plan_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("payment_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_initial_payment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    generates_commission: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="true"
    )
    student_due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    college_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="draft")
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_notified_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_plan: Mapped[PaymentPlan] = relationship(back_populates="installments")

    __table_args__ = (
        UniqueConstraint(
            "payment_plan_id", "installment_number", name="uq_installments_plan_number"
        ),
        CheckConstraint("installment_number >= 0", name="installment_number_non_negative"),
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("paid_amount IS NULL OR paid_amount >= 0", name="paid_amount_non_negative"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'due_soon', 'overdue', 'paid', 'partial', 'cancelled')",
            name="status_valid",
        ),
        CheckConstraint(
            "(status = 'paid' AND paid_amount IS NOT NULL AND paid_date IS NOT NULL) OR "
            "(status != 'paid' AND status != 'partial' AND (paid_amount IS NULL OR paid_amount = 0)) OR "
            "(status = 'partial' AND paid_amount IS NOT NULL AND paid_date IS NOT NULL)",
            name="valid_paid_amount",
        ),
        CheckConstraint(
            "payment_notes IS NULL OR char_length(payment_notes) <= 500",
            name="payment_notes_length",
        ),
    )

    @property
    def is_paid(self) -> bool:
        """Check if the installment is fully paid."""
        return self.status == "paid"
