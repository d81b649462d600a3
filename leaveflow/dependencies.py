"""Shared FastAPI dependencies — one workflow instance per process.

The workflow owns the per-request and per-balance locks, so every request
handler must see the same instance.
"""

from functools import lru_cache

from fastapi import Depends

from leaveflow.calendar_sync.graph import GraphCalendarSync
from leaveflow.database import async_session_factory
from leaveflow.leave.bulk import BulkOperationCoordinator
from leaveflow.leave.store import SqlBalanceStore, SqlLeaveTypeStore, SqlRequestStore
from leaveflow.leave.workflow import ApprovalWorkflow
from leaveflow.notifications.service import InAppNotificationSender


@lru_cache
def get_workflow() -> ApprovalWorkflow:
    return ApprovalWorkflow(
        requests=SqlRequestStore(async_session_factory),
        leave_types=SqlLeaveTypeStore(async_session_factory),
        balances=SqlBalanceStore(async_session_factory),
        calendar=GraphCalendarSync(),
        notifier=InAppNotificationSender(async_session_factory),
    )


def get_bulk_coordinator(
    workflow: ApprovalWorkflow = Depends(get_workflow),
) -> BulkOperationCoordinator:
    return BulkOperationCoordinator(workflow)
