"""Leave router — validate, submit, amend, approve/reject/cancel, bulk,
conflicts, balances, calendar.

Identities come from the caller; authentication is handled upstream.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from leaveflow.common.constants import LeaveStatus
from leaveflow.common.exceptions import ValidationException
from leaveflow.common.rate_limit import BULK_LIMIT, SUBMIT_LIMIT, limiter
from leaveflow.dependencies import get_bulk_coordinator, get_workflow
from leaveflow.leave.bulk import BulkOperationCoordinator
from leaveflow.leave.conflicts import ConflictDetector
from leaveflow.leave.schemas import (
    BalanceSummary,
    BulkApproveRequest,
    BulkResult,
    ConflictCheckRequest,
    ConflictReport,
    LeaveApproveRequest,
    LeaveCalendarEntry,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
    RequestSummary,
    SubmissionOutcome,
    SubmitRequest,
    TransitionOutcome,
    ValidationVerdict,
)
from leaveflow.leave.workflow import ApprovalWorkflow

router = APIRouter(prefix="", tags=["leave"])


# ── POST /validate: dry run ────────────────────────────────────────

@router.post("/validate", response_model=ValidationVerdict)
async def validate_request(
    body: SubmitRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Run every admissibility check without persisting anything."""
    return await workflow.validate(body.request, conflict_context=body.context)


# ── POST /requests: submit ─────────────────────────────────────────

@router.post("/requests", response_model=SubmissionOutcome, status_code=201)
@limiter.limit(SUBMIT_LIMIT)
async def submit_request(
    request: Request,
    body: SubmitRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Submit a leave request. Auto-approves when the leave type allows it."""
    outcome = await workflow.submit(body.request, conflict_context=body.context)
    if not outcome.verdict.is_valid:
        raise ValidationException(outcome.verdict.errors, outcome.verdict.warnings)
    return outcome


# ── GET /requests: by requester ────────────────────────────────────

@router.get("/requests", response_model=list[LeaveRequestOut])
async def list_requests(
    requester_id: uuid.UUID = Query(...),
    status: Optional[LeaveStatus] = Query(None),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.list_for_requester(requester_id, status=status)


# ── GET /pending: approval queue ───────────────────────────────────

@router.get("/pending", response_model=list[LeaveRequestOut])
async def pending_requests(
    manager_id: Optional[uuid.UUID] = Query(None),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Pending requests, oldest first, optionally for one manager."""
    return await workflow.list_pending(manager_id=manager_id)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.get(request_id)


# ── PUT /requests/{id}: amend a pending request ─────────────────────

@router.put("/requests/{request_id}", response_model=SubmissionOutcome)
@limiter.limit(SUBMIT_LIMIT)
async def amend_request(
    request: Request,
    request_id: uuid.UUID,
    body: SubmitRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Edit a pending request. The edit is re-validated and its days recomputed."""
    outcome = await workflow.amend(request_id, body.request, conflict_context=body.context)
    if not outcome.verdict.is_valid:
        raise ValidationException(outcome.verdict.errors, outcome.verdict.warnings)
    return outcome


# ── PUT /requests/{id}/approve | reject | cancel ────────────────────

@router.put("/requests/{request_id}/approve", response_model=TransitionOutcome)
async def approve_request(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Approve a pending request. Consumes balance and books the calendar."""
    return await workflow.approve(
        request_id, approver_id=body.approver_id, comment=body.comment,
    )


@router.put("/requests/{request_id}/reject", response_model=TransitionOutcome)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.reject(
        request_id, approver_id=body.approver_id, comment=body.comment,
    )


@router.put("/requests/{request_id}/cancel", response_model=TransitionOutcome)
async def cancel_request(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Cancel a pending or approved request. Approved leave is credited back."""
    return await workflow.cancel(request_id, reason=body.reason)


# ── Bulk ────────────────────────────────────────────────────────────

@router.post("/bulk/validate", response_model=ValidationVerdict)
async def bulk_validate(
    body: list[LeaveRequestCreate],
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
):
    return coordinator.validate_batch(body, coordinator.max_size)


@router.post("/bulk/submit", response_model=BulkResult)
@limiter.limit(BULK_LIMIT)
async def bulk_submit(
    request: Request,
    body: list[LeaveRequestCreate],
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
):
    result = await coordinator.submit_many(body)
    if not result.verdict.is_valid:
        raise ValidationException(result.verdict.errors, result.verdict.warnings)
    return result


@router.post("/bulk/approve", response_model=BulkResult)
@limiter.limit(BULK_LIMIT)
async def bulk_approve(
    request: Request,
    body: BulkApproveRequest,
    coordinator: BulkOperationCoordinator = Depends(get_bulk_coordinator),
):
    result = await coordinator.approve_many(
        body.request_ids, approver_id=body.approver_id, comment=body.comment,
    )
    if not result.verdict.is_valid:
        raise ValidationException(result.verdict.errors, result.verdict.warnings)
    return result


# ── POST /conflicts ─────────────────────────────────────────────────

@router.post("/conflicts", response_model=ConflictReport)
async def check_conflicts(body: ConflictCheckRequest):
    """Blackout, holiday and team-overlap report for a date span."""
    if body.end_date < body.start_date:
        raise ValidationException(["End date must be on or after start date"])
    return ConflictDetector.detect(body.start_date, body.end_date, body.context)


# ── Balances / catalogue / reporting ────────────────────────────────

@router.get("/balances/{employee_id}", response_model=BalanceSummary)
async def balance_summary(
    employee_id: uuid.UUID,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.balance_summary(employee_id)


@router.get("/types", response_model=list[LeaveTypeOut])
async def leave_types(workflow: ApprovalWorkflow = Depends(get_workflow)):
    """Active leave types."""
    return await workflow.leave_types_available()


@router.get("/calendar", response_model=list[LeaveCalendarEntry])
async def team_calendar(
    start: date = Query(...),
    end: date = Query(...),
    requester_id: Optional[list[uuid.UUID]] = Query(None),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Approved and pending leave overlapping ``[start, end]``."""
    if end < start:
        raise ValidationException(["End date must be on or after start date"])
    return await workflow.team_calendar(start, end, requester_ids=requester_id)


@router.get("/dashboard", response_model=RequestSummary)
async def dashboard(
    requester_id: Optional[uuid.UUID] = Query(None),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    return await workflow.dashboard(requester_id)
