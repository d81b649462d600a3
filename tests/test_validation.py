"""Request validator — check order, hard stops, overlaps and conflict folding."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from leaveflow.common.constants import LeaveStatus
from leaveflow.leave.schemas import ConflictContext, LeaveSpan, TeamMember
from leaveflow.leave.validation import END_BEFORE_START, RequestValidator
from tests.conftest import (
    ANNUAL,
    SICK,
    TODAY,
    make_balance,
    make_payload,
    make_request,
)

OVERLAP_ERROR = (
    "You have overlapping leave requests. Please check your existing "
    "requests and modify dates if needed."
)


@pytest.fixture
def validator() -> RequestValidator:
    return RequestValidator()


# ═════════════════════════════════════════════════════════════════════
# 1. Baseline and hard stops
# ═════════════════════════════════════════════════════════════════════


class TestBaseline:
    def test_clean_request_is_valid_without_warnings(self, validator):
        verdict = validator.validate(make_payload(), ANNUAL, make_balance(), [], today=TODAY)
        assert verdict.is_valid
        assert verdict.errors == []
        assert verdict.warnings == []

    def test_missing_leave_type(self, validator):
        verdict = validator.validate(make_payload(leave_type_id=None), None, today=TODAY)
        assert verdict.errors == ["Leave type is required"]

    def test_unresolved_leave_type(self, validator):
        verdict = validator.validate(make_payload(leave_type_id=uuid.uuid4()), None, today=TODAY)
        assert verdict.errors == ["Leave type not found"]

    def test_end_before_start_is_the_only_finding(self, validator):
        # Sunday start (weekend) on short notice would otherwise warn twice
        payload = make_payload(start_date=date(2025, 3, 9), end_date=TODAY)
        verdict = validator.validate(payload, ANNUAL, make_balance(), [], today=TODAY)
        assert verdict.errors == [END_BEFORE_START]
        assert verdict.warnings == []


# ═════════════════════════════════════════════════════════════════════
# 2. Required fields and dates
# ═════════════════════════════════════════════════════════════════════


class TestFieldsAndDates:
    def test_missing_dates(self, validator):
        verdict = validator.validate(
            make_payload(start_date=None, end_date=None), ANNUAL, make_balance(), today=TODAY,
        )
        assert verdict.errors == ["Start date is required", "End date is required"]

    def test_partial_day_requires_hours(self, validator):
        payload = make_payload(end_date=date(2025, 3, 10), is_partial_day=True)
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert verdict.errors == ["Partial day hours must be specified for partial day requests"]

    @pytest.mark.parametrize("hours", [Decimal("0.25"), Decimal("9")])
    def test_partial_day_hours_range(self, validator, hours):
        payload = make_payload(end_date=date(2025, 3, 10), is_partial_day=True, partial_day_hours=hours)
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert verdict.errors == ["Partial day hours must be between 0.5 and 8 hours"]

    def test_past_start_date(self, validator):
        payload = make_payload(start_date=date(2025, 2, 24), end_date=date(2025, 2, 28))
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert "Cannot request leave for past dates" in verdict.errors

    def test_past_date_exempt_type(self, validator):
        payload = make_payload(
            leave_type_id=SICK.id,
            start_date=date(2025, 2, 27),
            end_date=date(2025, 2, 28),
            attachment_url="https://files.example.com/note.pdf",
        )
        verdict = validator.validate(payload, SICK, today=TODAY)
        assert verdict.is_valid

    def test_short_notice_warning(self, validator):
        payload = make_payload(start_date=TODAY, end_date=date(2025, 3, 4))
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert verdict.is_valid
        assert verdict.warnings == [
            "Short notice: Consider providing more advance notice for leave requests"
        ]

    def test_two_business_days_notice_is_enough(self, validator):
        payload = make_payload(start_date=date(2025, 3, 4), end_date=date(2025, 3, 4))
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert verdict.warnings == []

    def test_weekend_warning(self, validator):
        payload = make_payload(start_date=date(2025, 3, 8), end_date=date(2025, 3, 10))
        verdict = validator.validate(payload, ANNUAL, today=TODAY)
        assert verdict.is_valid
        assert verdict.warnings == ["Leave request includes weekend dates"]


# ═════════════════════════════════════════════════════════════════════
# 3. Policy and balance
# ═════════════════════════════════════════════════════════════════════


class TestPolicyAndBalance:
    def test_max_days_and_documentation(self, validator):
        payload = make_payload(
            leave_type_id=SICK.id,
            start_date=date(2025, 3, 10),
            end_date=date(2025, 3, 17),
        )
        verdict = validator.validate(payload, SICK, today=TODAY)
        assert verdict.errors == [
            "Maximum 5 days allowed per request for Sick Leave. You requested 6 days.",
            "Documentation is required for Sick Leave requests",
        ]

    def test_insufficient_balance(self, validator):
        balance = make_balance(total_allowance=Decimal("10"), used_days=Decimal("7"))
        verdict = validator.validate(make_payload(), ANNUAL, balance, today=TODAY)
        assert verdict.errors == [
            "Insufficient leave balance. Requested: 5 days, Available: 3 days"
        ]

    def test_balance_warnings_pass_through(self, validator):
        balance = make_balance(total_allowance=Decimal("8"), expiration_date=date(2025, 3, 31))
        verdict = validator.validate(make_payload(), ANNUAL, balance, today=TODAY)
        assert verdict.is_valid
        assert len(verdict.warnings) == 2
        assert verdict.warnings[0].startswith("This request will use 62.5%")
        assert "expires in 28 days" in verdict.warnings[1]


# ═════════════════════════════════════════════════════════════════════
# 4. Overlaps and conflicts
# ═════════════════════════════════════════════════════════════════════


class TestOverlaps:
    def test_own_active_overlap_blocks(self, validator):
        existing = [make_request(start_date=date(2025, 3, 14), end_date=date(2025, 3, 18), status=LeaveStatus.approved)]
        verdict = validator.validate(make_payload(), ANNUAL, existing_requests=existing, today=TODAY)
        assert verdict.errors == [OVERLAP_ERROR]

    def test_closed_requests_do_not_block(self, validator):
        existing = [
            make_request(status=LeaveStatus.rejected),
            make_request(status=LeaveStatus.cancelled),
        ]
        verdict = validator.validate(make_payload(), ANNUAL, existing_requests=existing, today=TODAY)
        assert verdict.is_valid

    def test_other_requesters_do_not_block(self, validator):
        existing = [make_request(requester_id=uuid.uuid4(), status=LeaveStatus.approved)]
        verdict = validator.validate(make_payload(), ANNUAL, existing_requests=existing, today=TODAY)
        assert verdict.is_valid

    def test_excluded_request_is_ignored(self, validator):
        own = make_request()
        verdict = validator.validate(
            make_payload(), ANNUAL, existing_requests=[own], today=TODAY, exclude_request_id=own.id,
        )
        assert verdict.is_valid

    def test_team_overlap_is_only_a_warning(self, validator):
        ctx = ConflictContext(
            team_members=[
                TeamMember(
                    display_name="Ana",
                    leave_requests=[LeaveSpan(start_date=date(2025, 3, 12), end_date=date(2025, 3, 12), status=LeaveStatus.approved)],
                )
            ]
        )
        verdict = validator.validate(make_payload(), ANNUAL, conflict_context=ctx, today=TODAY)
        assert verdict.is_valid
        assert len(verdict.warnings) == 1
        assert "Ana" in verdict.warnings[0]

    def test_blackout_blocks(self, validator):
        ctx = ConflictContext(blackout_dates=[date(2025, 3, 11)])
        verdict = validator.validate(make_payload(), ANNUAL, conflict_context=ctx, today=TODAY)
        assert verdict.errors == ["Your request conflicts with company blackout dates: 2025-03-11"]
