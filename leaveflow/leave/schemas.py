"""Leave Pydantic v2 schemas — request / response validation and engine values.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → entities as read from a store
  - *Verdict / *Report  → rule-engine results
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from leaveflow.common.constants import (
    ConflictSeverity,
    ConflictType,
    LeaveStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Leave category with its approval / documentation / max-day rules."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    requires_approval: bool = True
    max_days_per_request: Optional[int] = None
    requires_documentation: bool = False
    color_code: Optional[str] = None
    policy_url: Optional[str] = None
    # Capability flags
    past_date_exempt: bool = False
    allows_partial_day: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Allowance / usage record for one (employee, leave type)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    leave_type_name: Optional[str] = None
    total_allowance: Decimal
    used_days: Decimal = Decimal("0")
    remaining_days: Decimal = Decimal("0")
    carry_over_days: Decimal = Decimal("0")
    effective_date: date
    expiration_date: date
    version: int = 0


class BalanceDetail(BaseModel):
    leave_type_id: uuid.UUID
    leave_type_name: Optional[str] = None
    total_allowance: Decimal
    used_days: Decimal
    remaining_days: Decimal
    carry_over_days: Decimal
    expiration_date: date
    is_expiring_soon: bool
    days_until_expiry: int
    usage_percentage: int = 0


class BalanceSummary(BaseModel):
    """Per-employee roll-up across leave types."""

    employee_id: uuid.UUID
    balances: list[BalanceDetail] = []
    total_allowance: Decimal = Decimal("0")
    total_used: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    Required-ness of leave type and dates is a business rule, not a parse
    rule: missing values reach the validator and come back as verdict errors.
    """

    requester_id: uuid.UUID
    requester_email: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    manager_email: Optional[str] = None
    leave_type_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = Field(None, description="Leave start date (inclusive)")
    end_date: Optional[date] = Field(None, description="Leave end date (inclusive)")
    is_partial_day: bool = False
    partial_day_hours: Optional[Decimal] = Field(
        None, description="Hours off for a partial day (0.5 – 8)"
    )
    comments: Optional[str] = Field(None, max_length=1000)
    attachment_url: Optional[str] = None
    title: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Entity
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """A persisted leave request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: Optional[str] = None
    requester_id: uuid.UUID
    requester_email: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    manager_email: Optional[str] = None
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: Decimal
    is_partial_day: bool = False
    partial_day_hours: Optional[Decimal] = None
    comments: Optional[str] = None
    attachment_url: Optional[str] = None
    status: LeaveStatus = LeaveStatus.pending
    approver_id: Optional[uuid.UUID] = None
    approver_comments: Optional[str] = None
    approval_date: Optional[datetime] = None
    submission_date: datetime
    last_modified: datetime
    calendar_event_id: Optional[str] = None
    notifications_sent: bool = False


class LeaveApproveRequest(BaseModel):
    approver_id: Optional[uuid.UUID] = None
    comment: Optional[str] = Field(None, max_length=1000)


class LeaveRejectRequest(BaseModel):
    approver_id: Optional[uuid.UUID] = None
    comment: Optional[str] = Field(None, max_length=1000)


class LeaveCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Validation / conflicts
# ═════════════════════════════════════════════════════════════════════


class ValidationVerdict(BaseModel):
    """Blocking errors and advisory warnings, in check order."""

    errors: list[str] = []
    warnings: list[str] = []

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, errors: list[str], warnings: list[str]) -> None:
        self.errors.extend(errors)
        self.warnings.extend(warnings)


class ConflictDetail(BaseModel):
    type: ConflictType
    severity: ConflictSeverity
    message: str
    dates: list[date] = []
    members: list[str] = []


class ConflictReport(BaseModel):
    conflicts: list[ConflictDetail] = []

    @computed_field
    @property
    def has_conflicts(self) -> bool:
        return any(c.severity == ConflictSeverity.error for c in self.conflicts)


class LeaveSpan(BaseModel):
    start_date: date
    end_date: date
    status: LeaveStatus


class TeamMember(BaseModel):
    display_name: str
    leave_requests: list[LeaveSpan] = []


class ConflictContext(BaseModel):
    """External inputs for conflict detection."""

    blackout_dates: list[date] = []
    holidays: list[date] = []
    team_members: list[TeamMember] = []


class ConflictCheckRequest(BaseModel):
    start_date: date
    end_date: date
    context: ConflictContext = Field(default_factory=ConflictContext)


# ═════════════════════════════════════════════════════════════════════
# Workflow results
# ═════════════════════════════════════════════════════════════════════


class SubmitRequest(BaseModel):
    request: LeaveRequestCreate
    context: Optional[ConflictContext] = None


class SubmissionOutcome(BaseModel):
    verdict: ValidationVerdict
    request: Optional[LeaveRequestOut] = None
    auto_approved: bool = False
    skipped_effects: list[str] = []


class TransitionOutcome(BaseModel):
    """Result of one state-machine transition."""

    request: LeaveRequestOut
    previous_status: LeaveStatus
    skipped_effects: list[str] = []


class CalendarEventDetails(BaseModel):
    """What the calendar collaborator needs to block out a leave."""

    subject: str
    leave_type_name: str
    start_date: date
    end_date: date
    is_all_day: bool = True
    partial_day_hours: Optional[Decimal] = None
    body: str = ""
    attendee_email: Optional[str] = None


class LeaveCalendarEntry(BaseModel):
    request_id: uuid.UUID
    requester_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: Decimal
    status: LeaveStatus
    leave_type_name: Optional[str] = None
    color: Optional[str] = None


class RequestSummary(BaseModel):
    total_requests: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    cancelled_requests: int = 0
    total_days_requested: Decimal = Decimal("0")
    total_days_approved: Decimal = Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# Bulk
# ═════════════════════════════════════════════════════════════════════


class BulkApproveRequest(BaseModel):
    request_ids: list[uuid.UUID]
    approver_id: Optional[uuid.UUID] = None
    comment: Optional[str] = None


class BulkItemResult(BaseModel):
    index: int
    request_id: Optional[uuid.UUID] = None
    ok: bool
    error: Optional[str] = None
    detail: Optional[dict[str, Any]] = None


class BulkResult(BaseModel):
    verdict: ValidationVerdict
    items: list[BulkItemResult] = []

    @computed_field
    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.ok)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if not i.ok)
