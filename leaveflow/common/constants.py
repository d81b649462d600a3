"""Enums and constants for leaveflow — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# Statuses that still occupy the requester's calendar
ACTIVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.pending, LeaveStatus.approved}
)


class WorkflowAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


class EffectKind(str, enum.Enum):
    fatal = "fatal"
    best_effort = "best_effort"


# ── Conflicts ───────────────────────────────────────────────────────

class ConflictType(str, enum.Enum):
    team_member = "team-member"
    blackout_date = "blackout-date"
    holiday = "holiday"
    overlap = "overlap"


class ConflictSeverity(str, enum.Enum):
    error = "error"
    warning = "warning"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


# ── Formats / defaults ──────────────────────────────────────────────

DATE_FORMAT = "%Y-%m-%d"
AUTO_APPROVAL_COMMENT = "Auto-approved"
CALENDAR_EVENT_CATEGORY = "Leave Request"
DEFAULT_LEAVE_COLORS = ["#4CAF50", "#2196F3", "#FF9800", "#E91E63", "#9C27B0", "#607D8B"]
