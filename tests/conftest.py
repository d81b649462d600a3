"""Shared test fixtures — in-memory collaborators, SQLite DB, app client, factories.

The leave engine only ever talks to its collaborator protocols, so most tests
run against the in-memory fakes below. Store and API tests use SQLite +
aiosqlite for fast isolated runs without PostgreSQL.
"""

from __future__ import annotations

import os

# Point pydantic-settings at SQLite before any leaveflow import reads it
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("GRAPH_ACCESS_TOKEN", "test-graph-token")

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leaveflow.common.constants import LeaveStatus, NotificationType
from leaveflow.common.exceptions import ConcurrencyConflict
from leaveflow.database import Base
from leaveflow.dependencies import get_workflow
from leaveflow.leave.schemas import (
    CalendarEventDetails,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)
from leaveflow.leave.store import SqlBalanceStore, SqlLeaveTypeStore, SqlRequestStore
from leaveflow.leave.workflow import ApprovalWorkflow
from leaveflow.main import create_app
from leaveflow.notifications.service import InAppNotificationSender

# Import ALL model modules so metadata.create_all sees every table
import leaveflow.leave.models  # noqa: F401
import leaveflow.notifications.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leaveflow.common.rate_limit import limiter

    limiter.reset()
    yield


# ═════════════════════════════════════════════════════════════════════
# Reference data
# ═════════════════════════════════════════════════════════════════════

# Monday. Engine tests pass it as ``today`` so date rules are deterministic.
TODAY = date(2025, 3, 3)

EMPLOYEE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
MANAGER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
EMPLOYEE_EMAIL = "worker@example.com"
MANAGER_EMAIL = "manager@example.com"

ANNUAL = LeaveTypeOut(
    id=uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001"),
    code="AL",
    name="Annual Leave",
    requires_approval=True,
    max_days_per_request=30,
    color_code="#4CAF50",
)
SICK = LeaveTypeOut(
    id=uuid.UUID("aaaaaaaa-0000-0000-0000-000000000002"),
    code="SL",
    name="Sick Leave",
    requires_approval=False,
    max_days_per_request=5,
    requires_documentation=True,
    past_date_exempt=True,
)
BEREAVEMENT = LeaveTypeOut(
    id=uuid.UUID("aaaaaaaa-0000-0000-0000-000000000003"),
    code="BL",
    name="Bereavement Leave",
    requires_approval=True,
    max_days_per_request=5,
    allows_partial_day=False,
)
RETIRED = LeaveTypeOut(
    id=uuid.UUID("aaaaaaaa-0000-0000-0000-000000000004"),
    code="XL",
    name="Sabbatical",
    is_active=False,
)
ALL_TYPES = [ANNUAL, SICK, BEREAVEMENT, RETIRED]


def make_payload(**overrides: Any) -> LeaveRequestCreate:
    """An admissible annual-leave request for Mon 10 – Fri 14 March 2025."""
    data: dict[str, Any] = dict(
        requester_id=EMPLOYEE_ID,
        requester_email=EMPLOYEE_EMAIL,
        manager_id=MANAGER_ID,
        manager_email=MANAGER_EMAIL,
        leave_type_id=ANNUAL.id,
        start_date=date(2025, 3, 10),
        end_date=date(2025, 3, 14),
        comments="Family trip",
    )
    data.update(overrides)
    return LeaveRequestCreate(**data)


def make_balance(
    leave_type: LeaveTypeOut = ANNUAL,
    *,
    employee_id: uuid.UUID = EMPLOYEE_ID,
    total_allowance: Decimal = Decimal("20"),
    used_days: Decimal = Decimal("0"),
    carry_over_days: Decimal = Decimal("0"),
    expiration_date: date = date(2025, 12, 31),
) -> LeaveBalanceOut:
    return LeaveBalanceOut(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type.id,
        leave_type_name=leave_type.name,
        total_allowance=total_allowance,
        used_days=used_days,
        remaining_days=total_allowance + carry_over_days - used_days,
        carry_over_days=carry_over_days,
        effective_date=date(2025, 1, 1),
        expiration_date=expiration_date,
    )


def make_request(**overrides: Any) -> LeaveRequestOut:
    """A stored request, for validator / conflict inputs."""
    now = datetime.now(timezone.utc)
    data: dict[str, Any] = dict(
        id=uuid.uuid4(),
        requester_id=EMPLOYEE_ID,
        leave_type_id=ANNUAL.id,
        start_date=date(2025, 3, 10),
        end_date=date(2025, 3, 14),
        total_days=Decimal("5"),
        status=LeaveStatus.pending,
        submission_date=now,
        last_modified=now,
    )
    data.update(overrides)
    return LeaveRequestOut(**data)


def future_monday(weeks_ahead: int = 3) -> date:
    """A Monday comfortably past the short-notice window from the real today."""
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) + 7 * (weeks_ahead - 1))


# ═════════════════════════════════════════════════════════════════════
# In-memory collaborators
# ═════════════════════════════════════════════════════════════════════


class InMemoryRequestStore:
    """RequestStore over a dict. Every call yields to the loop once so
    concurrent coroutines interleave the way they would against a database."""

    def __init__(self) -> None:
        self.rows: dict[uuid.UUID, LeaveRequestOut] = {}
        self.fail_update: Optional[Exception] = None
        self.fail_create: Optional[Exception] = None
        self.updates: list[dict[str, Any]] = []

    async def create(self, payload: LeaveRequestCreate, *, total_days: Decimal) -> LeaveRequestOut:
        await asyncio.sleep(0)
        if self.fail_create is not None:
            raise self.fail_create
        now = datetime.now(timezone.utc)
        row = LeaveRequestOut(
            id=uuid.uuid4(),
            **payload.model_dump(),
            total_days=total_days,
            status=LeaveStatus.pending,
            submission_date=now,
            last_modified=now,
        )
        self.rows[row.id] = row
        return row.model_copy()

    async def get_by_id(self, request_id: uuid.UUID) -> Optional[LeaveRequestOut]:
        await asyncio.sleep(0)
        row = self.rows.get(request_id)
        return row.model_copy() if row else None

    async def update(
        self,
        request_id: uuid.UUID,
        fields: dict[str, Any],
        *,
        expected_status: Optional[LeaveStatus] = None,
    ) -> Optional[LeaveRequestOut]:
        await asyncio.sleep(0)
        if self.fail_update is not None:
            raise self.fail_update
        row = self.rows.get(request_id)
        if row is None:
            return None
        if expected_status is not None and row.status != expected_status:
            return None
        self.updates.append(dict(fields))
        updated = row.model_copy(update=fields)
        self.rows[request_id] = updated
        return updated.model_copy()

    async def list_by_requester(self, requester_id: uuid.UUID) -> Sequence[LeaveRequestOut]:
        await asyncio.sleep(0)
        return [r.model_copy() for r in self.rows.values() if r.requester_id == requester_id]

    async def list_all(self) -> Sequence[LeaveRequestOut]:
        await asyncio.sleep(0)
        return [r.model_copy() for r in self.rows.values()]


class InMemoryLeaveTypeStore:
    def __init__(self, leave_types: Sequence[LeaveTypeOut] = ()) -> None:
        self.rows = {lt.id: lt for lt in leave_types}

    async def get_by_id(self, leave_type_id: uuid.UUID) -> Optional[LeaveTypeOut]:
        return self.rows.get(leave_type_id)

    async def list_types(self, *, is_active: Optional[bool] = None) -> Sequence[LeaveTypeOut]:
        return [lt for lt in self.rows.values() if is_active is None or lt.is_active == is_active]


class InMemoryBalanceStore:
    """BalanceStore with the same optimistic ``version`` check as the SQL store."""

    def __init__(self, balances: Sequence[LeaveBalanceOut] = ()) -> None:
        self.rows = {(b.employee_id, b.leave_type_id): b for b in balances}
        self.fail_save: Optional[Exception] = None
        self.saves = 0

    async def get(self, employee_id: uuid.UUID, leave_type_id: uuid.UUID) -> Optional[LeaveBalanceOut]:
        await asyncio.sleep(0)
        row = self.rows.get((employee_id, leave_type_id))
        return row.model_copy() if row else None

    async def save(self, balance: LeaveBalanceOut) -> LeaveBalanceOut:
        await asyncio.sleep(0)
        if self.fail_save is not None:
            raise self.fail_save
        key = (balance.employee_id, balance.leave_type_id)
        if self.rows[key].version != balance.version:
            raise ConcurrencyConflict("LeaveBalance", balance.id)
        saved = balance.model_copy(update={"version": balance.version + 1})
        self.rows[key] = saved
        self.saves += 1
        return saved.model_copy()

    async def list_for_employee(self, employee_id: uuid.UUID) -> Sequence[LeaveBalanceOut]:
        return [b.model_copy() for (emp, _), b in self.rows.items() if emp == employee_id]

    def current(self, leave_type: LeaveTypeOut = ANNUAL, employee_id: uuid.UUID = EMPLOYEE_ID) -> LeaveBalanceOut:
        return self.rows[(employee_id, leave_type.id)]


class FakeCalendar:
    def __init__(self) -> None:
        self.events: dict[str, CalendarEventDetails] = {}
        self.deleted: list[str] = []
        self.fail_create: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None

    async def create_event(self, details: CalendarEventDetails) -> str:
        await asyncio.sleep(0)
        if self.fail_create is not None:
            raise self.fail_create
        event_id = f"evt-{len(self.events) + 1}"
        self.events[event_id] = details
        return event_id

    async def delete_event(self, event_id: str) -> None:
        await asyncio.sleep(0)
        if self.fail_delete is not None:
            raise self.fail_delete
        self.events.pop(event_id, None)
        self.deleted.append(event_id)


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[list[str], str, str]] = []
        self.types: list[NotificationType] = []
        self.fail: Optional[Exception] = None

    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        *,
        type: NotificationType = NotificationType.info,
    ) -> None:
        await asyncio.sleep(0)
        if self.fail is not None:
            raise self.fail
        self.sent.append((list(recipients), subject, body))
        self.types.append(type)

    @property
    def subjects(self) -> list[str]:
        return [subject for _, subject, _ in self.sent]


# ── Engine fixtures ─────────────────────────────────────────────────

@pytest.fixture
def request_store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def leave_type_store() -> InMemoryLeaveTypeStore:
    return InMemoryLeaveTypeStore(ALL_TYPES)


@pytest.fixture
def balance_store() -> InMemoryBalanceStore:
    return InMemoryBalanceStore([make_balance(ANNUAL), make_balance(SICK, total_allowance=Decimal("10"))])


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def workflow(request_store, leave_type_store, balance_store, calendar, notifier) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        requests=request_store,
        leave_types=leave_type_store,
        balances=balance_store,
        calendar=calendar,
        notifier=notifier,
    )


# ── SQL-backed fixtures ─────────────────────────────────────────────

@pytest.fixture
async def sql_stores(_setup_db) -> tuple[SqlRequestStore, SqlLeaveTypeStore, SqlBalanceStore]:
    """SQLAlchemy stores over the test DB, seeded with the reference leave types."""
    types = SqlLeaveTypeStore(TestSessionFactory)
    for lt in ALL_TYPES:
        await types.add(lt)
    balances = SqlBalanceStore(TestSessionFactory)
    await balances.add(make_balance(ANNUAL))
    return SqlRequestStore(TestSessionFactory), types, balances


@pytest.fixture
async def sql_workflow(sql_stores, calendar) -> ApprovalWorkflow:
    requests, types, balances = sql_stores
    return ApprovalWorkflow(
        requests=requests,
        leave_types=types,
        balances=balances,
        calendar=calendar,
        notifier=InAppNotificationSender(TestSessionFactory),
    )


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(sql_workflow):
    """Create a fresh app instance wired to the SQLite-backed workflow."""
    application = create_app()
    application.dependency_overrides[get_workflow] = lambda: sql_workflow
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
