"""SQLAlchemy-backed stores for the leave engine.

Each call opens its own session from the factory and commits before
returning, so the workflow's effects are individually durable.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from leaveflow.common.constants import LeaveStatus
from leaveflow.common.exceptions import ConcurrencyConflict, ValidationException
from leaveflow.leave.balance import BalanceLedger
from leaveflow.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leaveflow.leave.schemas import (
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class SqlRequestStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, payload: LeaveRequestCreate, *, total_days: Decimal) -> LeaveRequestOut:
        now = datetime.now(timezone.utc)
        row = LeaveRequest(
            **payload.model_dump(),
            total_days=total_days,
            status=LeaveStatus.pending,
            submission_date=now,
            last_modified=now,
            notifications_sent=False,
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
            return LeaveRequestOut.model_validate(row)

    async def get_by_id(self, request_id: uuid.UUID) -> Optional[LeaveRequestOut]:
        async with self._session_factory() as db:
            row = await db.get(LeaveRequest, request_id)
            return LeaveRequestOut.model_validate(row) if row else None

    async def update(
        self,
        request_id: uuid.UUID,
        fields: dict[str, Any],
        *,
        expected_status: Optional[LeaveStatus] = None,
    ) -> Optional[LeaveRequestOut]:
        stmt = update(LeaveRequest).where(LeaveRequest.id == request_id)
        if expected_status is not None:
            stmt = stmt.where(LeaveRequest.status == expected_status)

        async with self._session_factory() as db:
            result = await db.execute(stmt.values(**fields))
            if result.rowcount == 0:
                await db.rollback()
                return None
            row = (
                await db.execute(select(LeaveRequest).where(LeaveRequest.id == request_id))
            ).scalar_one()
            out = LeaveRequestOut.model_validate(row)
            await db.commit()
            return out

    async def list_by_requester(self, requester_id: uuid.UUID) -> Sequence[LeaveRequestOut]:
        async with self._session_factory() as db:
            rows = (
                await db.execute(
                    select(LeaveRequest)
                    .where(LeaveRequest.requester_id == requester_id)
                    .order_by(LeaveRequest.start_date)
                )
            ).scalars().all()
            return [LeaveRequestOut.model_validate(r) for r in rows]

    async def list_all(self) -> Sequence[LeaveRequestOut]:
        async with self._session_factory() as db:
            rows = (
                await db.execute(select(LeaveRequest).order_by(LeaveRequest.start_date))
            ).scalars().all()
            return [LeaveRequestOut.model_validate(r) for r in rows]


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


class SqlLeaveTypeStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, leave_type: LeaveTypeOut) -> LeaveTypeOut:
        async with self._session_factory() as db:
            row = LeaveType(**leave_type.model_dump())
            db.add(row)
            await db.commit()
            return LeaveTypeOut.model_validate(row)

    async def get_by_id(self, leave_type_id: uuid.UUID) -> Optional[LeaveTypeOut]:
        async with self._session_factory() as db:
            row = await db.get(LeaveType, leave_type_id)
            return LeaveTypeOut.model_validate(row) if row else None

    async def list_types(self, *, is_active: Optional[bool] = None) -> Sequence[LeaveTypeOut]:
        query = select(LeaveType).order_by(LeaveType.name)
        if is_active is not None:
            query = query.where(LeaveType.is_active == is_active)
        async with self._session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
            return [LeaveTypeOut.model_validate(r) for r in rows]


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class SqlBalanceStore:
    """Balance persistence with optimistic concurrency on ``version``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, balance: LeaveBalanceOut) -> LeaveBalanceOut:
        errors = BalanceLedger.validate_balance_fields(
            total_allowance=balance.total_allowance,
            carry_over_days=balance.carry_over_days,
            effective_date=balance.effective_date,
            expiration_date=balance.expiration_date,
        )
        if errors:
            raise ValidationException(errors)
        fields = balance.model_dump(exclude={"leave_type_name"})
        async with self._session_factory() as db:
            db.add(LeaveBalance(**fields))
            await db.commit()
        return await self.get(balance.employee_id, balance.leave_type_id)

    async def get(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
    ) -> Optional[LeaveBalanceOut]:
        async with self._session_factory() as db:
            row = (
                await db.execute(
                    select(LeaveBalance)
                    .where(
                        LeaveBalance.employee_id == employee_id,
                        LeaveBalance.leave_type_id == leave_type_id,
                    )
                    .options(selectinload(LeaveBalance.leave_type))
                )
            ).scalars().first()
            return LeaveBalanceOut.model_validate(row) if row else None

    async def save(self, balance: LeaveBalanceOut) -> LeaveBalanceOut:
        async with self._session_factory() as db:
            result = await db.execute(
                update(LeaveBalance)
                .where(
                    LeaveBalance.id == balance.id,
                    LeaveBalance.version == balance.version,
                )
                .values(
                    used_days=balance.used_days,
                    remaining_days=balance.remaining_days,
                    version=balance.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            if result.rowcount == 0:
                await db.rollback()
                raise ConcurrencyConflict("LeaveBalance", balance.id)
            await db.commit()
        return balance.model_copy(update={"version": balance.version + 1})

    async def list_for_employee(self, employee_id: uuid.UUID) -> Sequence[LeaveBalanceOut]:
        async with self._session_factory() as db:
            rows = (
                await db.execute(
                    select(LeaveBalance)
                    .where(LeaveBalance.employee_id == employee_id)
                    .options(selectinload(LeaveBalance.leave_type))
                )
            ).scalars().all()
            return [LeaveBalanceOut.model_validate(r) for r in rows]
