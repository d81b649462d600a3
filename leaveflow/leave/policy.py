"""Per-leave-type admissibility rules."""

from __future__ import annotations

import re
from typing import Iterable

from leaveflow.common.constants import DEFAULT_LEAVE_COLORS
from leaveflow.common.dates import business_days_between
from leaveflow.leave.schemas import LeaveRequestCreate, LeaveTypeOut

_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


class LeaveTypePolicy:
    """Checks a candidate request against the rules of its leave type."""

    @staticmethod
    def check(
        leave_type: LeaveTypeOut,
        request: LeaveRequestCreate,
    ) -> tuple[list[str], list[str]]:
        """Return ``(errors, warnings)``.

        An inactive type short-circuits: its other rules are irrelevant.
        The span check only runs when both dates are present.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not leave_type.is_active:
            errors.append(f'Leave type "{leave_type.name}" is not currently available')
            return errors, warnings

        if (
            leave_type.max_days_per_request
            and request.start_date is not None
            and request.end_date is not None
        ):
            requested = business_days_between(request.start_date, request.end_date)
            if requested > leave_type.max_days_per_request:
                errors.append(
                    f"Maximum {leave_type.max_days_per_request} days allowed per request "
                    f"for {leave_type.name}. You requested {requested} days."
                )

        if leave_type.requires_documentation and not request.attachment_url:
            errors.append(f"Documentation is required for {leave_type.name} requests")

        if request.is_partial_day and not leave_type.allows_partial_day:
            warnings.append(f"Partial day requests are unusual for {leave_type.name}")

        return errors, warnings

    # ── Catalogue helpers ───────────────────────────────────────────

    @staticmethod
    def active_types(leave_types: Iterable[LeaveTypeOut]) -> list[LeaveTypeOut]:
        return [lt for lt in leave_types if lt.is_active]

    @staticmethod
    def is_valid_color_code(color_code: str) -> bool:
        return bool(_COLOR_RE.match(color_code or ""))

    @staticmethod
    def default_color(name: str) -> str:
        return DEFAULT_LEAVE_COLORS[len(name) % len(DEFAULT_LEAVE_COLORS)]

    @staticmethod
    def display_color(leave_type: LeaveTypeOut) -> str:
        if leave_type.color_code and LeaveTypePolicy.is_valid_color_code(leave_type.color_code):
            return leave_type.color_code
        return LeaveTypePolicy.default_color(leave_type.name)
