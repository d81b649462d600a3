"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import LeaveStatus
from leaveflow.database import Base

# Partial days are fractions of a workday (0.5h / 8h = 0.0625)
DAYS = sa.Numeric(7, 4)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    requires_approval: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    max_days_per_request: Mapped[Optional[int]] = mapped_column(sa.Integer)
    requires_documentation: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    color_code: Mapped[Optional[str]] = mapped_column(sa.String(7))
    policy_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    past_date_exempt: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    allows_partial_day: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "leave_type_id", name="uq_leave_balance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    total_allowance: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    used_days: Mapped[Decimal] = mapped_column(DAYS, default=Decimal("0"))
    remaining_days: Mapped[Decimal] = mapped_column(DAYS, default=Decimal("0"))
    carry_over_days: Mapped[Decimal] = mapped_column(DAYS, default=Decimal("0"))
    effective_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    expiration_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # Optimistic concurrency token, bumped on every save
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")

    @property
    def leave_type_name(self) -> Optional[str]:
        return self.leave_type.name if self.leave_type is not None else None


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[Optional[str]] = mapped_column(sa.String(255))
    requester_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    requester_email: Mapped[Optional[str]] = mapped_column(sa.String(320))
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    manager_email: Mapped[Optional[str]] = mapped_column(sa.String(320))
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    is_partial_day: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    partial_day_hours: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(4, 2))
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    attachment_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        default=LeaveStatus.pending,
        index=True,
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    approver_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    approval_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    submission_date: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    last_modified: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    calendar_event_id: Mapped[Optional[str]] = mapped_column(sa.String(255))
    notifications_sent: Mapped[bool] = mapped_column(sa.Boolean, default=False)

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")
