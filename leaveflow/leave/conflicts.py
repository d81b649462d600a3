"""Conflict detection against blackout dates, holidays and team leave."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional

from leaveflow.common.constants import (
    ACTIVE_STATUSES,
    DATE_FORMAT,
    ConflictSeverity,
    ConflictType,
    LeaveStatus,
)
from leaveflow.common.dates import DateLike, as_date, date_range
from leaveflow.leave.schemas import ConflictContext, ConflictDetail, ConflictReport, LeaveRequestOut


def spans_overlap(start: date, end: date, other_start: date, other_end: date) -> bool:
    """Inclusive calendar-day overlap."""
    return start <= other_end and end >= other_start


def _fmt(days: list[date]) -> str:
    return ", ".join(d.strftime(DATE_FORMAT) for d in days)


class ConflictDetector:
    """Builds a ConflictReport for a candidate date span."""

    @staticmethod
    def detect(start: DateLike, end: DateLike, context: ConflictContext) -> ConflictReport:
        start_d = as_date(start)
        end_d = as_date(end)
        requested = date_range(start_d, end_d)
        conflicts: list[ConflictDetail] = []

        blackout = set(context.blackout_dates)
        blocked = [d for d in requested if d in blackout]
        if blocked:
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.blackout_date,
                    severity=ConflictSeverity.error,
                    message=f"Your request conflicts with company blackout dates: {_fmt(blocked)}",
                    dates=blocked,
                )
            )

        holidays = set(context.holidays)
        on_holiday = [d for d in requested if d in holidays]
        if on_holiday:
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.holiday,
                    severity=ConflictSeverity.warning,
                    message=(
                        f"Your request includes company holidays: {_fmt(on_holiday)}. "
                        f"These days may not count against your leave balance."
                    ),
                    dates=on_holiday,
                )
            )

        members = [
            member.display_name
            for member in context.team_members
            if any(
                span.status == LeaveStatus.approved
                and spans_overlap(start_d, end_d, span.start_date, span.end_date)
                for span in member.leave_requests
            )
        ]
        if members:
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.team_member,
                    severity=ConflictSeverity.warning,
                    message=(
                        f"Team members with overlapping leave: {', '.join(members)}. "
                        f"Please coordinate with your team to ensure adequate coverage."
                    ),
                    members=members,
                )
            )

        return ConflictReport(conflicts=conflicts)

    @staticmethod
    def own_overlap(
        requester_id: uuid.UUID,
        start: DateLike,
        end: DateLike,
        existing_requests: Iterable[LeaveRequestOut],
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> Optional[ConflictDetail]:
        """The requester's own pending or approved requests that touch the span."""
        start_d = as_date(start)
        end_d = as_date(end)
        clashing = [
            existing
            for existing in existing_requests
            if existing.id != exclude_request_id
            and existing.requester_id == requester_id
            and existing.status in ACTIVE_STATUSES
            and spans_overlap(start_d, end_d, existing.start_date, existing.end_date)
        ]
        if not clashing:
            return None
        days = sorted(
            {d for existing in clashing for d in date_range(existing.start_date, existing.end_date)}
            & set(date_range(start_d, end_d))
        )
        return ConflictDetail(
            type=ConflictType.overlap,
            severity=ConflictSeverity.error,
            message=(
                "You have overlapping leave requests. Please check your existing "
                "requests and modify dates if needed."
            ),
            dates=days,
        )
