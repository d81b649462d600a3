"""Request validator — one ordered pass producing a ValidationVerdict.

Check order:
  0. Leave type present and resolved (hard stop)
  1. Required fields and partial-day hours
  2. End on or after start (hard stop)
  3. Start not in the past, unless the type is past-date exempt
  4. Short notice (warning)
  5. Weekend start/end (warning)
  6. Leave-type policy
  7. Balance, when supplied
  8. Overlap with the requester's own active requests
  9. Blackout / holiday / team conflicts, when a context is supplied

Validation never raises; every finding lands in the verdict.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from leaveflow.common.constants import ConflictSeverity
from leaveflow.common.dates import business_days_between, is_weekend, today_local
from leaveflow.config import settings
from leaveflow.leave.balance import BalanceLedger
from leaveflow.leave.conflicts import ConflictDetector
from leaveflow.leave.policy import LeaveTypePolicy
from leaveflow.leave.schemas import (
    ConflictContext,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
    ValidationVerdict,
)

MIN_PARTIAL_HOURS = Decimal("0.5")

END_BEFORE_START = "End date must be on or after start date"


class RequestValidator:
    """Composes date math, leave-type policy, balance rules and conflicts."""

    def __init__(
        self,
        ledger: Optional[BalanceLedger] = None,
        *,
        short_notice_days: Optional[int] = None,
    ) -> None:
        self.ledger = ledger or BalanceLedger()
        self.short_notice_days = (
            short_notice_days if short_notice_days is not None else settings.SHORT_NOTICE_BUSINESS_DAYS
        )

    def validate(
        self,
        request: LeaveRequestCreate,
        leave_type: Optional[LeaveTypeOut],
        balance: Optional[LeaveBalanceOut] = None,
        existing_requests: Optional[Iterable[LeaveRequestOut]] = None,
        *,
        conflict_context: Optional[ConflictContext] = None,
        today: Optional[date] = None,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> ValidationVerdict:
        verdict = ValidationVerdict()
        today = today or today_local()

        if request.leave_type_id is None:
            verdict.errors.append("Leave type is required")
            return verdict
        if leave_type is None or leave_type.id != request.leave_type_id:
            verdict.errors.append("Leave type not found")
            return verdict

        self._check_required(request, verdict)

        has_dates = request.start_date is not None and request.end_date is not None
        if has_dates:
            if request.end_date < request.start_date:
                verdict.errors.append(END_BEFORE_START)
                return verdict
            self._check_dates(request, leave_type, verdict, today)

        verdict.extend(*LeaveTypePolicy.check(leave_type, request))

        if not has_dates:
            return verdict

        if balance is not None:
            verdict.extend(*self.ledger.check(balance, request, today))

        if existing_requests is not None:
            self._check_own_overlaps(request, existing_requests, verdict, exclude_request_id)

        if conflict_context is not None:
            report = ConflictDetector.detect(request.start_date, request.end_date, conflict_context)
            for conflict in report.conflicts:
                if conflict.severity == ConflictSeverity.error:
                    verdict.errors.append(conflict.message)
                else:
                    verdict.warnings.append(conflict.message)

        return verdict

    # ─────────────────────────────────────────────────────────────────
    # Individual checks
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _check_required(request: LeaveRequestCreate, verdict: ValidationVerdict) -> None:
        if request.start_date is None:
            verdict.errors.append("Start date is required")
        if request.end_date is None:
            verdict.errors.append("End date is required")

        hours = request.partial_day_hours
        if request.is_partial_day and (hours is None or hours <= 0):
            verdict.errors.append("Partial day hours must be specified for partial day requests")
        elif hours is not None and (hours < MIN_PARTIAL_HOURS or hours > settings.STANDARD_WORKDAY_HOURS):
            verdict.errors.append("Partial day hours must be between 0.5 and 8 hours")

    def _check_dates(
        self,
        request: LeaveRequestCreate,
        leave_type: LeaveTypeOut,
        verdict: ValidationVerdict,
        today: date,
    ) -> None:
        if request.start_date < today and not leave_type.past_date_exempt:
            verdict.errors.append("Cannot request leave for past dates")

        notice = business_days_between(today, request.start_date)
        if notice < self.short_notice_days:
            verdict.warnings.append(
                "Short notice: Consider providing more advance notice for leave requests"
            )

        if is_weekend(request.start_date) or is_weekend(request.end_date):
            verdict.warnings.append("Leave request includes weekend dates")

    @staticmethod
    def _check_own_overlaps(
        request: LeaveRequestCreate,
        existing_requests: Iterable[LeaveRequestOut],
        verdict: ValidationVerdict,
        exclude_request_id: Optional[uuid.UUID],
    ) -> None:
        conflict = ConflictDetector.own_overlap(
            request.requester_id,
            request.start_date,
            request.end_date,
            existing_requests,
            exclude_request_id,
        )
        if conflict is not None:
            verdict.errors.append(conflict.message)
