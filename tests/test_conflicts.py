"""Conflict detection — blackout dates, holidays, team overlaps."""

from __future__ import annotations

import uuid
from datetime import date

from leaveflow.common.constants import ConflictSeverity, ConflictType, LeaveStatus
from leaveflow.leave.conflicts import ConflictDetector, spans_overlap
from leaveflow.leave.schemas import ConflictContext, LeaveSpan, TeamMember
from tests.conftest import EMPLOYEE_ID, make_request

START = date(2025, 3, 10)
END = date(2025, 3, 14)


class TestSpansOverlap:
    def test_touching_edges_overlap(self):
        assert spans_overlap(START, END, END, date(2025, 3, 20))
        assert spans_overlap(START, END, date(2025, 3, 1), START)

    def test_disjoint(self):
        assert not spans_overlap(START, END, date(2025, 3, 15), date(2025, 3, 20))


class TestConflictDetector:
    def test_no_context_no_conflicts(self):
        report = ConflictDetector.detect(START, END, ConflictContext())
        assert report.conflicts == []
        assert report.has_conflicts is False

    def test_blackout_is_blocking(self):
        ctx = ConflictContext(blackout_dates=[date(2025, 3, 12), date(2025, 4, 1)])
        report = ConflictDetector.detect(START, END, ctx)

        assert report.has_conflicts is True
        (conflict,) = report.conflicts
        assert conflict.type == ConflictType.blackout_date
        assert conflict.severity == ConflictSeverity.error
        assert conflict.dates == [date(2025, 3, 12)]
        assert conflict.message == "Your request conflicts with company blackout dates: 2025-03-12"

    def test_holiday_is_warning(self):
        ctx = ConflictContext(holidays=[date(2025, 3, 14)])
        report = ConflictDetector.detect(START, END, ctx)

        assert report.has_conflicts is False
        (conflict,) = report.conflicts
        assert conflict.type == ConflictType.holiday
        assert conflict.severity == ConflictSeverity.warning
        assert "2025-03-14" in conflict.message

    def test_only_approved_team_leave_counts(self):
        ctx = ConflictContext(
            team_members=[
                TeamMember(
                    display_name="Ana",
                    leave_requests=[LeaveSpan(start_date=date(2025, 3, 13), end_date=date(2025, 3, 18), status=LeaveStatus.approved)],
                ),
                TeamMember(
                    display_name="Ben",
                    leave_requests=[LeaveSpan(start_date=START, end_date=END, status=LeaveStatus.pending)],
                ),
                TeamMember(
                    display_name="Cy",
                    leave_requests=[LeaveSpan(start_date=date(2025, 3, 17), end_date=date(2025, 3, 18), status=LeaveStatus.approved)],
                ),
            ]
        )
        report = ConflictDetector.detect(START, END, ctx)

        (conflict,) = report.conflicts
        assert conflict.type == ConflictType.team_member
        assert conflict.severity == ConflictSeverity.warning
        assert conflict.members == ["Ana"]
        assert conflict.message.startswith("Team members with overlapping leave: Ana.")

    def test_all_kinds_together(self):
        ctx = ConflictContext(
            blackout_dates=[date(2025, 3, 10)],
            holidays=[date(2025, 3, 11)],
            team_members=[
                TeamMember(
                    display_name="Ana",
                    leave_requests=[LeaveSpan(start_date=START, end_date=START, status=LeaveStatus.approved)],
                )
            ],
        )
        report = ConflictDetector.detect(START, END, ctx)
        assert [c.type for c in report.conflicts] == [
            ConflictType.blackout_date,
            ConflictType.holiday,
            ConflictType.team_member,
        ]


class TestOwnOverlap:
    def test_overlap_is_blocking_and_lists_shared_days(self):
        existing = make_request(start_date=date(2025, 3, 13), end_date=date(2025, 3, 18))

        conflict = ConflictDetector.own_overlap(EMPLOYEE_ID, START, END, [existing])

        assert conflict.type == ConflictType.overlap
        assert conflict.severity == ConflictSeverity.error
        assert conflict.dates == [date(2025, 3, 13), date(2025, 3, 14)]
        assert conflict.message.startswith("You have overlapping leave requests.")

    def test_ignores_closed_foreign_and_excluded_requests(self):
        rejected = make_request(status=LeaveStatus.rejected)
        colleague = make_request(requester_id=uuid.uuid4())
        itself = make_request()

        assert ConflictDetector.own_overlap(
            EMPLOYEE_ID, START, END, [rejected, colleague, itself], exclude_request_id=itself.id,
        ) is None
