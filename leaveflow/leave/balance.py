"""Balance ledger — consumption arithmetic, sufficiency checks and the only
code path allowed to change ``used_days`` / ``remaining_days``.

Business logic:
  - Consumption is hours / 8 for a partial day, otherwise business days
  - ``remaining = max(0, total + carry_over - used)``, recomputed after every
    mutation and whenever a balance is loaded
  - ``apply`` / ``reverse`` are exact inverses; ``consume`` / ``restore`` are
    their persisted, per-balance serialised counterparts
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from leaveflow.common.dates import business_days_between, days_until, is_within_threshold
from leaveflow.common.locks import KeyedLock
from leaveflow.config import settings
from leaveflow.leave.repository import BalanceStore
from leaveflow.leave.schemas import (
    BalanceDetail,
    BalanceSummary,
    LeaveBalanceOut,
    LeaveRequestCreate,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MAX_TOTAL_ALLOWANCE = Decimal("365")
MAX_CARRY_OVER = Decimal("30")


def recompute_remaining(balance: LeaveBalanceOut) -> LeaveBalanceOut:
    """Derive ``remaining_days`` from allowance, carry-over and usage."""
    balance.remaining_days = max(
        ZERO, balance.total_allowance + balance.carry_over_days - balance.used_days
    )
    return balance


class BalanceLedger:
    """Balance arithmetic plus serialised persistence of usage changes."""

    def __init__(
        self,
        store: Optional[BalanceStore] = None,
        *,
        usage_warning_ratio: Optional[Decimal] = None,
        expiry_warning_days: Optional[int] = None,
        workday_hours: Optional[Decimal] = None,
    ) -> None:
        self._store = store
        self._locks = KeyedLock()
        self.usage_warning_ratio = (
            usage_warning_ratio if usage_warning_ratio is not None else settings.USAGE_WARNING_RATIO
        )
        self.expiry_warning_days = (
            expiry_warning_days if expiry_warning_days is not None else settings.EXPIRY_WARNING_DAYS
        )
        self.workday_hours = (
            workday_hours if workday_hours is not None else settings.STANDARD_WORKDAY_HOURS
        )

    # ─────────────────────────────────────────────────────────────────
    # Arithmetic
    # ─────────────────────────────────────────────────────────────────

    def consumption_amount(self, request: LeaveRequestCreate) -> Decimal:
        """Days this request draws from the balance."""
        if request.is_partial_day and request.partial_day_hours:
            return Decimal(request.partial_day_hours) / self.workday_hours
        if request.start_date is None or request.end_date is None:
            return ZERO
        return Decimal(business_days_between(request.start_date, request.end_date))

    @staticmethod
    def check_sufficiency(balance: LeaveBalanceOut, amount: Decimal) -> Optional[str]:
        if amount > balance.remaining_days:
            return (
                f"Insufficient leave balance. Requested: {amount} days, "
                f"Available: {balance.remaining_days} days"
            )
        return None

    def usage_warning(self, balance: LeaveBalanceOut, amount: Decimal) -> Optional[str]:
        if balance.total_allowance <= 0:
            return None
        ratio = amount / balance.total_allowance
        if ratio > self.usage_warning_ratio:
            name = balance.leave_type_name or "leave"
            return (
                f"This request will use {ratio * 100:.1f}% of your annual "
                f"{name} allowance"
            )
        return None

    def expiry_warning(
        self,
        balance: LeaveBalanceOut,
        today: Optional[date] = None,
    ) -> Optional[str]:
        remaining = days_until(balance.expiration_date, today)
        if 0 < remaining <= self.expiry_warning_days:
            name = balance.leave_type_name or "leave"
            return (
                f"Your {name} balance expires in {remaining} days. "
                f"Consider using remaining days before expiration."
            )
        return None

    def check(
        self,
        balance: LeaveBalanceOut,
        request: LeaveRequestCreate,
        today: Optional[date] = None,
    ) -> tuple[list[str], list[str]]:
        """All balance rules for a candidate request as ``(errors, warnings)``."""
        amount = self.consumption_amount(request)
        errors: list[str] = []
        warnings: list[str] = []
        # Never trust a stored remaining figure.
        recompute_remaining(balance)

        insufficient = self.check_sufficiency(balance, amount)
        if insufficient:
            errors.append(insufficient)
        for warning in (self.usage_warning(balance, amount), self.expiry_warning(balance, today)):
            if warning:
                warnings.append(warning)
        return errors, warnings

    @staticmethod
    def apply(balance: LeaveBalanceOut, amount: Decimal) -> LeaveBalanceOut:
        balance.used_days = balance.used_days + amount
        return recompute_remaining(balance)

    @staticmethod
    def reverse(balance: LeaveBalanceOut, amount: Decimal) -> LeaveBalanceOut:
        balance.used_days = max(ZERO, balance.used_days - amount)
        return recompute_remaining(balance)

    # ─────────────────────────────────────────────────────────────────
    # Persisted mutations
    # ─────────────────────────────────────────────────────────────────

    async def consume(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        amount: Decimal,
    ) -> Optional[LeaveBalanceOut]:
        """Record ``amount`` as used. Returns None when no balance is tracked
        for this (employee, leave type)."""
        return await self._mutate(employee_id, leave_type_id, amount, self.apply)

    async def restore(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        amount: Decimal,
    ) -> Optional[LeaveBalanceOut]:
        return await self._mutate(employee_id, leave_type_id, amount, self.reverse)

    async def _mutate(self, employee_id, leave_type_id, amount, operation):
        if self._store is None:
            raise RuntimeError("BalanceLedger has no BalanceStore to persist to")

        async with self._locks.hold((employee_id, leave_type_id)):
            balance = await self._store.get(employee_id, leave_type_id)
            if balance is None:
                logger.info(
                    "No balance tracked for employee %s / leave type %s; skipping %s",
                    employee_id, leave_type_id, operation.__name__,
                )
                return None
            recompute_remaining(balance)
            if operation is self.apply and amount > balance.remaining_days:
                logger.warning(
                    "Balance %s overdrawn: consuming %s with %s remaining",
                    balance.id, amount, balance.remaining_days,
                )
            operation(balance, amount)
            saved = await self._store.save(balance)
            logger.info(
                "Balance %s %s %s day(s): used=%s remaining=%s",
                saved.id, operation.__name__, amount, saved.used_days, saved.remaining_days,
            )
            return saved

    # ─────────────────────────────────────────────────────────────────
    # Reporting helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def usage_percentage(balance: LeaveBalanceOut) -> int:
        available = balance.total_allowance + balance.carry_over_days
        if available <= 0:
            return 0
        return int((balance.used_days / available * 100).quantize(Decimal("1")))

    def is_expiring_soon(self, balance: LeaveBalanceOut, today: Optional[date] = None) -> bool:
        return is_within_threshold(balance.expiration_date, self.expiry_warning_days, today)

    @staticmethod
    def validate_balance_fields(
        *,
        total_allowance: Optional[Decimal] = None,
        carry_over_days: Optional[Decimal] = None,
        effective_date: Optional[date] = None,
        expiration_date: Optional[date] = None,
    ) -> list[str]:
        """Sanity rules for creating or editing a balance record."""
        errors: list[str] = []
        if total_allowance is not None:
            if total_allowance < 0:
                errors.append("Total allowance cannot be negative")
            if total_allowance > MAX_TOTAL_ALLOWANCE:
                errors.append("Total allowance cannot exceed 365 days")
        if carry_over_days is not None:
            if carry_over_days < 0:
                errors.append("Carry over days cannot be negative")
            if carry_over_days > MAX_CARRY_OVER:
                errors.append("Carry over days cannot exceed 30 days")
        if effective_date and expiration_date and expiration_date <= effective_date:
            errors.append("Expiration date must be after effective date")
        return errors

    def summarise(
        self,
        employee_id: uuid.UUID,
        balances: Iterable[LeaveBalanceOut],
        today: Optional[date] = None,
    ) -> BalanceSummary:
        details = []
        for bal in balances:
            recompute_remaining(bal)
            details.append(
                BalanceDetail(
                    leave_type_id=bal.leave_type_id,
                    leave_type_name=bal.leave_type_name,
                    total_allowance=bal.total_allowance,
                    used_days=bal.used_days,
                    remaining_days=bal.remaining_days,
                    carry_over_days=bal.carry_over_days,
                    expiration_date=bal.expiration_date,
                    is_expiring_soon=self.is_expiring_soon(bal, today),
                    days_until_expiry=days_until(bal.expiration_date, today),
                    usage_percentage=self.usage_percentage(bal),
                )
            )
        return BalanceSummary(
            employee_id=employee_id,
            balances=details,
            total_allowance=sum((d.total_allowance for d in details), ZERO),
            total_used=sum((d.used_days for d in details), ZERO),
            total_remaining=sum((d.remaining_days for d in details), ZERO),
        )
