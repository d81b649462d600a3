"""Collaborator contracts consumed by the leave engine.

The engine never talks to a database, mail server or calendar directly; it
awaits these protocols. ``leaveflow.leave.store`` supplies SQLAlchemy-backed
stores, ``leaveflow.calendar_sync`` and ``leaveflow.notifications`` supply
the calendar and notification collaborators.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from leaveflow.common.constants import LeaveStatus, NotificationType
from leaveflow.leave.schemas import (
    CalendarEventDetails,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)


class RequestStore(Protocol):
    async def create(
        self,
        payload: LeaveRequestCreate,
        *,
        total_days: Decimal,
    ) -> LeaveRequestOut:
        """Persist a new request in ``pending`` and return it."""
        raise NotImplementedError

    async def get_by_id(self, request_id: uuid.UUID) -> Optional[LeaveRequestOut]:
        raise NotImplementedError

    async def update(
        self,
        request_id: uuid.UUID,
        fields: dict[str, Any],
        *,
        expected_status: Optional[LeaveStatus] = None,
    ) -> Optional[LeaveRequestOut]:
        """Apply ``fields``; when ``expected_status`` is given the write only
        happens if the stored status still equals it, otherwise None."""
        raise NotImplementedError

    async def list_by_requester(self, requester_id: uuid.UUID) -> Sequence[LeaveRequestOut]:
        raise NotImplementedError

    async def list_all(self) -> Sequence[LeaveRequestOut]:
        raise NotImplementedError


class LeaveTypeStore(Protocol):
    async def get_by_id(self, leave_type_id: uuid.UUID) -> Optional[LeaveTypeOut]:
        raise NotImplementedError

    async def list_types(self, *, is_active: Optional[bool] = None) -> Sequence[LeaveTypeOut]:
        raise NotImplementedError


class BalanceStore(Protocol):
    async def get(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
    ) -> Optional[LeaveBalanceOut]:
        raise NotImplementedError

    async def save(self, balance: LeaveBalanceOut) -> LeaveBalanceOut:
        """Persist used/remaining; may raise ConcurrencyConflict on a stale version."""
        raise NotImplementedError

    async def list_for_employee(self, employee_id: uuid.UUID) -> Sequence[LeaveBalanceOut]:
        raise NotImplementedError


class CalendarSync(Protocol):
    async def create_event(self, details: CalendarEventDetails) -> str:
        raise NotImplementedError

    async def delete_event(self, event_id: str) -> None:
        raise NotImplementedError


class NotificationSender(Protocol):
    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        *,
        type: NotificationType = NotificationType.info,
    ) -> None:
        raise NotImplementedError
