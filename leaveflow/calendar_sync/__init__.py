"""Calendar collaborators for the leave workflow."""

from leaveflow.calendar_sync.graph import GraphCalendarSync, build_event

__all__ = ["GraphCalendarSync", "build_event"]
