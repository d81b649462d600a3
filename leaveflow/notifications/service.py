"""Notification service — in-app persistence plus the leave message builders."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaveflow.common.constants import DATE_FORMAT, NotificationType
from leaveflow.leave.schemas import LeaveRequestOut
from leaveflow.notifications.models import Notification

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient: str,
        type: NotificationType = NotificationType.info,
        subject: str,
        body: str,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient=recipient,
            type=type,
            subject=subject,
            body=body,
        )
        db.add(notification)
        await db.flush()
        return notification


# ── NotificationSender backed by the notifications table ────────────


class InAppNotificationSender:
    """Delivers workflow notifications as in-app rows, one per recipient."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        *,
        type: NotificationType = NotificationType.info,
    ) -> None:
        async with self._session_factory() as db:
            for recipient in recipients:
                await NotificationService.create_notification(
                    db, recipient=recipient, type=type, subject=subject, body=body,
                )
            await db.commit()
        logger.info("Notification %r delivered to %d recipient(s)", subject, len(recipients))


# ── Leave message builders ──────────────────────────────────────────
# One-line bodies; HTML templating is the mail platform's concern.


def _span(request: LeaveRequestOut) -> str:
    return (
        f"{request.start_date.strftime(DATE_FORMAT)} to "
        f"{request.end_date.strftime(DATE_FORMAT)} ({request.total_days} day(s))"
    )


def submission_message(request: LeaveRequestOut, leave_type_name: str) -> tuple[str, str]:
    return (
        f"Leave Request Submitted - {leave_type_name}",
        f"A {leave_type_name} request for {_span(request)} has been submitted and is pending approval.",
    )


def decision_message(request: LeaveRequestOut, leave_type_name: str) -> tuple[str, str]:
    status = request.status.value
    body = f"Your {leave_type_name} request for {_span(request)} has been {status}."
    if request.approver_comments:
        body += f" Comments: {request.approver_comments}"
    return f"Leave Request {status.upper()} - {leave_type_name}", body


def cancellation_message(
    request: LeaveRequestOut,
    leave_type_name: str,
    reason: Optional[str] = None,
) -> tuple[str, str]:
    body = f"The {leave_type_name} request for {_span(request)} has been cancelled."
    if reason:
        body += f" Reason: {reason}"
    return f"Leave Request Cancelled - {leave_type_name}", body
