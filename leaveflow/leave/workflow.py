"""Approval workflow — the single owner of leave-request status changes.

Status transitions:
  approve  pending            → approved
  reject   pending            → rejected
  cancel   pending | approved → cancelled

A pending request may also be amended (type, dates, hours, comments); the
edit is re-validated and its ``total_days`` recomputed.

Every action runs an ordered list of effects. A FATAL effect that fails
aborts the action: completed effects are compensated in reverse order and
the caller gets a DependencyFailure naming the step. A BEST_EFFORT effect
that fails is logged and listed in ``skipped_effects``; the action still
succeeds.

Status writes are compare-and-set against the status the action started
from, and each request id is serialised through a keyed lock, so two
concurrent decisions on one request can never both win.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Sequence

from leaveflow.common.constants import (
    AUTO_APPROVAL_COMMENT,
    CALENDAR_EVENT_CATEGORY,
    DATE_FORMAT,
    EffectKind,
    LeaveStatus,
    NotificationType,
    WorkflowAction,
)
from leaveflow.common.exceptions import (
    AppException,
    DependencyFailure,
    InvalidTransition,
    NotFoundException,
)
from leaveflow.common.locks import KeyedLock
from leaveflow.leave.balance import BalanceLedger
from leaveflow.leave.conflicts import spans_overlap
from leaveflow.leave.repository import (
    BalanceStore,
    CalendarSync,
    LeaveTypeStore,
    NotificationSender,
    RequestStore,
)
from leaveflow.leave.policy import LeaveTypePolicy
from leaveflow.leave.schemas import (
    BalanceSummary,
    CalendarEventDetails,
    ConflictContext,
    LeaveCalendarEntry,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
    RequestSummary,
    SubmissionOutcome,
    TransitionOutcome,
    ValidationVerdict,
)
from leaveflow.leave.validation import RequestValidator
from leaveflow.notifications.service import (
    cancellation_message,
    decision_message,
    submission_message,
)

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Transition:
    sources: frozenset[LeaveStatus]
    target: LeaveStatus


TRANSITIONS: dict[WorkflowAction, Transition] = {
    WorkflowAction.approve: Transition(frozenset({LeaveStatus.pending}), LeaveStatus.approved),
    WorkflowAction.reject: Transition(frozenset({LeaveStatus.pending}), LeaveStatus.rejected),
    WorkflowAction.cancel: Transition(
        frozenset({LeaveStatus.pending, LeaveStatus.approved}), LeaveStatus.cancelled
    ),
}


def can_transition(action: WorkflowAction, status: LeaveStatus) -> bool:
    return status in TRANSITIONS[action].sources


# Fields a requester may change while the request is still pending
AMENDABLE_FIELDS = frozenset({
    "leave_type_id",
    "start_date",
    "end_date",
    "is_partial_day",
    "partial_day_hours",
    "comments",
    "attachment_url",
    "title",
})


# ═════════════════════════════════════════════════════════════════════
# Effects
# ═════════════════════════════════════════════════════════════════════


@dataclass
class TransitionContext:
    """Mutable state threaded through one action's effects."""

    action: WorkflowAction
    request: LeaveRequestOut
    previous_status: LeaveStatus
    approver_id: Optional[uuid.UUID] = None
    comment: Optional[str] = None
    reason: Optional[str] = None
    leave_type: Optional[LeaveTypeOut] = None
    balance_changed: bool = False
    skipped: list[str] = field(default_factory=list)


EffectFn = Callable[[TransitionContext], Awaitable[None]]


@dataclass(frozen=True)
class Effect:
    name: str
    kind: EffectKind
    run: EffectFn
    compensate: Optional[EffectFn] = None


# ═════════════════════════════════════════════════════════════════════
# Workflow
# ═════════════════════════════════════════════════════════════════════


class ApprovalWorkflow:
    """Submit / approve / reject / cancel leave requests."""

    def __init__(
        self,
        requests: RequestStore,
        leave_types: LeaveTypeStore,
        balances: BalanceStore,
        calendar: CalendarSync,
        notifier: NotificationSender,
        *,
        ledger: Optional[BalanceLedger] = None,
        validator: Optional[RequestValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.requests = requests
        self.leave_types = leave_types
        self.balances = balances
        self.calendar = calendar
        self.notifier = notifier
        self.ledger = ledger or BalanceLedger(balances)
        self.validator = validator or RequestValidator(self.ledger)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._request_locks = KeyedLock()
        self._requester_locks = KeyedLock()

        self.effects: dict[WorkflowAction, list[Effect]] = {
            WorkflowAction.approve: [
                Effect("record_status", EffectKind.fatal, self._write_status, self._revert_status),
                Effect("consume_balance", EffectKind.fatal, self._consume_balance, self._restore_consumed),
                Effect("create_calendar_event", EffectKind.best_effort, self._create_calendar_event),
                Effect("send_notification", EffectKind.best_effort, self._notify_decision),
            ],
            WorkflowAction.reject: [
                Effect("record_status", EffectKind.fatal, self._write_status),
                Effect("send_notification", EffectKind.best_effort, self._notify_decision),
            ],
            # Calendar cleanup runs only after status and balance are settled.
            WorkflowAction.cancel: [
                Effect("record_status", EffectKind.fatal, self._write_status, self._revert_status),
                Effect("restore_balance", EffectKind.fatal, self._restore_balance),
                Effect("delete_calendar_event", EffectKind.best_effort, self._delete_calendar_event),
                Effect("send_notification", EffectKind.best_effort, self._notify_cancellation),
            ],
        }

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    async def validate(
        self,
        payload: LeaveRequestCreate,
        *,
        conflict_context: Optional[ConflictContext] = None,
        today: Optional[date] = None,
    ) -> ValidationVerdict:
        """Dry run: the verdict ``submit`` would reach, without persisting."""
        verdict, _ = await self._evaluate(payload, conflict_context, today)
        return verdict

    async def _evaluate(
        self,
        payload: LeaveRequestCreate,
        conflict_context: Optional[ConflictContext],
        today: Optional[date],
        *,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> tuple[ValidationVerdict, Optional[LeaveTypeOut]]:
        leave_type = None
        balance = None
        try:
            if payload.leave_type_id is not None:
                leave_type = await self.leave_types.get_by_id(payload.leave_type_id)
            if leave_type is not None:
                balance = await self.balances.get(payload.requester_id, leave_type.id)
            existing = await self.requests.list_by_requester(payload.requester_id)
        except Exception as exc:
            raise DependencyFailure("load_request_context", exc) from exc

        verdict = self.validator.validate(
            payload,
            leave_type,
            balance,
            existing,
            conflict_context=conflict_context,
            today=today,
            exclude_request_id=exclude_request_id,
        )
        return verdict, leave_type

    async def submit(
        self,
        payload: LeaveRequestCreate,
        *,
        conflict_context: Optional[ConflictContext] = None,
        today: Optional[date] = None,
    ) -> SubmissionOutcome:
        """Validate, persist as pending, notify, and auto-approve when the
        leave type does not require approval. Nothing is persisted when the
        verdict carries errors."""
        # Serialised per requester so two overlapping submissions cannot both
        # pass the own-overlap check.
        async with self._requester_locks.hold(payload.requester_id):
            verdict, leave_type = await self._evaluate(payload, conflict_context, today)
            if not verdict.is_valid:
                logger.info(
                    "Leave request from %s rejected by validation: %s",
                    payload.requester_id, "; ".join(verdict.errors),
                )
                return SubmissionOutcome(verdict=verdict)

            total_days = self.ledger.consumption_amount(payload)
            try:
                created = await self.requests.create(payload, total_days=total_days)
            except AppException:
                raise
            except Exception as exc:
                raise DependencyFailure("create_request", exc) from exc

        logger.info(
            "Leave request %s submitted by %s: %s → %s (%s days)",
            created.id, created.requester_id, created.start_date, created.end_date, total_days,
        )

        skipped: list[str] = []
        try:
            recipients = [r for r in (created.requester_email, created.manager_email) if r]
            if recipients:
                subject, body = submission_message(created, leave_type.name)
                await self.notifier.send(
                    recipients, subject, body, type=NotificationType.action_required,
                )
        except Exception:
            logger.warning(
                "Submission notification for leave request %s failed", created.id, exc_info=True,
            )
            skipped.append("send_notification")

        if leave_type.requires_approval:
            return SubmissionOutcome(verdict=verdict, request=created, skipped_effects=skipped)
        return await self._auto_approve(created, leave_type, verdict, skipped)

    async def _auto_approve(
        self,
        request: LeaveRequestOut,
        leave_type: LeaveTypeOut,
        verdict: ValidationVerdict,
        skipped: list[str],
    ) -> SubmissionOutcome:
        """Approve a request whose type needs no manager decision.

        The request is already stored, so a failed approval is reported as a
        skipped ``auto_approve`` step on the stored (pending) row rather than
        as a failed submission.
        """
        try:
            outcome = await self.approve(request.id, comment=AUTO_APPROVAL_COMMENT)
        except AppException:
            logger.warning(
                "Auto-approval of leave request %s failed; left pending", request.id, exc_info=True,
            )
            try:
                latest = await self.requests.get_by_id(request.id)
            except Exception:
                logger.warning("Could not reload leave request %s", request.id, exc_info=True)
                latest = None
            return SubmissionOutcome(
                verdict=verdict,
                request=latest or request,
                skipped_effects=skipped + ["auto_approve"],
            )

        logger.info("Leave request %s auto-approved (%s)", request.id, leave_type.code)
        return SubmissionOutcome(
            verdict=verdict,
            request=outcome.request,
            auto_approved=True,
            skipped_effects=skipped + outcome.skipped_effects,
        )

    # ─────────────────────────────────────────────────────────────────
    # Amend
    # ─────────────────────────────────────────────────────────────────

    async def amend(
        self,
        request_id: uuid.UUID,
        payload: LeaveRequestCreate,
        *,
        conflict_context: Optional[ConflictContext] = None,
        today: Optional[date] = None,
    ) -> SubmissionOutcome:
        """Edit a pending request's type, dates, partial-day hours, comments,
        attachment or title.

        The edit is re-validated as a fresh submission, ignoring the request
        itself in the overlap check, and ``total_days`` is recomputed. The
        requester cannot change. Nothing is written when the verdict carries
        errors.
        """
        try:
            current = await self.requests.get_by_id(request_id)
        except Exception as exc:
            raise DependencyFailure("load_request", exc) from exc
        if current is None:
            raise NotFoundException("LeaveRequest", request_id)

        payload = payload.model_copy(update={"requester_id": current.requester_id})

        # Lock order: requester, then request.
        async with self._requester_locks.hold(current.requester_id):
            async with self._request_locks.hold(request_id):
                try:
                    current = await self.requests.get_by_id(request_id)
                except Exception as exc:
                    raise DependencyFailure("load_request", exc) from exc
                if current is None or current.status != LeaveStatus.pending:
                    status = current.status.value if current else "missing"
                    raise InvalidTransition(request_id, "amend", status)

                verdict, leave_type = await self._evaluate(
                    payload, conflict_context, today, exclude_request_id=request_id,
                )
                if not verdict.is_valid:
                    logger.info(
                        "Amendment of leave request %s rejected by validation: %s",
                        request_id, "; ".join(verdict.errors),
                    )
                    return SubmissionOutcome(verdict=verdict)

                total_days = self.ledger.consumption_amount(payload)
                fields = payload.model_dump(include=set(AMENDABLE_FIELDS))
                fields.update(total_days=total_days, last_modified=self._clock())
                try:
                    updated = await self.requests.update(
                        request_id, fields, expected_status=LeaveStatus.pending,
                    )
                except Exception as exc:
                    raise DependencyFailure("amend_request", exc) from exc
                if updated is None:
                    latest = await self.requests.get_by_id(request_id)
                    status = latest.status.value if latest else "missing"
                    raise InvalidTransition(request_id, "amend", status)

        logger.info(
            "Leave request %s amended: %s → %s (%s days)",
            request_id, updated.start_date, updated.end_date, total_days,
        )
        if leave_type.requires_approval:
            return SubmissionOutcome(verdict=verdict, request=updated)
        return await self._auto_approve(updated, leave_type, verdict, [])

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    async def approve(
        self,
        request_id: uuid.UUID,
        *,
        approver_id: Optional[uuid.UUID] = None,
        comment: Optional[str] = None,
    ) -> TransitionOutcome:
        return await self._transition(
            request_id, WorkflowAction.approve, approver_id=approver_id, comment=comment,
        )

    async def reject(
        self,
        request_id: uuid.UUID,
        *,
        approver_id: Optional[uuid.UUID] = None,
        comment: Optional[str] = None,
    ) -> TransitionOutcome:
        return await self._transition(
            request_id, WorkflowAction.reject, approver_id=approver_id, comment=comment,
        )

    async def cancel(
        self,
        request_id: uuid.UUID,
        *,
        reason: Optional[str] = None,
    ) -> TransitionOutcome:
        return await self._transition(request_id, WorkflowAction.cancel, reason=reason)

    async def _transition(
        self,
        request_id: uuid.UUID,
        action: WorkflowAction,
        **kwargs: Any,
    ) -> TransitionOutcome:
        async with self._request_locks.hold(request_id):
            try:
                current = await self.requests.get_by_id(request_id)
            except Exception as exc:
                raise DependencyFailure("load_request", exc) from exc
            if current is None:
                raise NotFoundException("LeaveRequest", request_id)
            if not can_transition(action, current.status):
                raise InvalidTransition(request_id, action.value, current.status.value)

            ctx = TransitionContext(
                action=action, request=current, previous_status=current.status, **kwargs,
            )
            await self._run_effects(ctx, self.effects[action])

        logger.info(
            "Leave request %s: %s → %s%s",
            request_id, ctx.previous_status.value, ctx.request.status.value,
            f" (skipped: {', '.join(ctx.skipped)})" if ctx.skipped else "",
        )
        return TransitionOutcome(
            request=ctx.request,
            previous_status=ctx.previous_status,
            skipped_effects=ctx.skipped,
        )

    async def _run_effects(self, ctx: TransitionContext, effects: Sequence[Effect]) -> None:
        completed: list[Effect] = []
        for effect in effects:
            try:
                await effect.run(ctx)
            except Exception as exc:
                if effect.kind == EffectKind.best_effort:
                    logger.warning(
                        "Leave request %s: %s failed during %s; continuing",
                        ctx.request.id, effect.name, ctx.action.value, exc_info=True,
                    )
                    ctx.skipped.append(effect.name)
                    continue
                await self._compensate(ctx, completed)
                if isinstance(exc, AppException):
                    raise
                raise DependencyFailure(effect.name, exc) from exc
            completed.append(effect)

    async def _compensate(self, ctx: TransitionContext, completed: list[Effect]) -> None:
        for effect in reversed(completed):
            if effect.compensate is None:
                continue
            try:
                await effect.compensate(ctx)
            except Exception:
                logger.error(
                    "Leave request %s: compensation for %s failed; manual repair required",
                    ctx.request.id, effect.name, exc_info=True,
                )

    # ─────────────────────────────────────────────────────────────────
    # Effect implementations
    # ─────────────────────────────────────────────────────────────────

    async def _write_status(self, ctx: TransitionContext) -> None:
        target = TRANSITIONS[ctx.action].target
        now = self._clock()
        fields: dict[str, Any] = {"status": target, "last_modified": now}
        if ctx.action in (WorkflowAction.approve, WorkflowAction.reject):
            fields.update(
                approver_id=ctx.approver_id,
                approver_comments=ctx.comment,
                approval_date=now,
            )

        updated = await self.requests.update(
            ctx.request.id, fields, expected_status=ctx.previous_status,
        )
        if updated is None:
            latest = await self.requests.get_by_id(ctx.request.id)
            status = latest.status.value if latest else "missing"
            raise InvalidTransition(ctx.request.id, ctx.action.value, status)
        ctx.request = updated

    async def _revert_status(self, ctx: TransitionContext) -> None:
        fields: dict[str, Any] = {"status": ctx.previous_status, "last_modified": self._clock()}
        if ctx.action == WorkflowAction.approve:
            fields.update(approver_id=None, approver_comments=None, approval_date=None)
        reverted = await self.requests.update(
            ctx.request.id, fields, expected_status=TRANSITIONS[ctx.action].target,
        )
        if reverted is not None:
            ctx.request = reverted
        logger.warning(
            "Leave request %s reverted to %s after failed %s",
            ctx.request.id, ctx.previous_status.value, ctx.action.value,
        )

    async def _consume_balance(self, ctx: TransitionContext) -> None:
        req = ctx.request
        saved = await self.ledger.consume(req.requester_id, req.leave_type_id, req.total_days)
        ctx.balance_changed = saved is not None

    async def _restore_consumed(self, ctx: TransitionContext) -> None:
        if ctx.balance_changed:
            req = ctx.request
            await self.ledger.restore(req.requester_id, req.leave_type_id, req.total_days)

    async def _restore_balance(self, ctx: TransitionContext) -> None:
        if ctx.previous_status != LeaveStatus.approved:
            return
        req = ctx.request
        saved = await self.ledger.restore(req.requester_id, req.leave_type_id, req.total_days)
        ctx.balance_changed = saved is not None

    async def _create_calendar_event(self, ctx: TransitionContext) -> None:
        details = self.calendar_event_details(ctx.request, await self._leave_type_name(ctx))
        event_id = await self.calendar.create_event(details)
        updated = await self.requests.update(ctx.request.id, {"calendar_event_id": event_id})
        if updated is not None:
            ctx.request = updated

    async def _delete_calendar_event(self, ctx: TransitionContext) -> None:
        if not ctx.request.calendar_event_id:
            return
        await self.calendar.delete_event(ctx.request.calendar_event_id)
        updated = await self.requests.update(ctx.request.id, {"calendar_event_id": None})
        if updated is not None:
            ctx.request = updated

    async def _notify_decision(self, ctx: TransitionContext) -> None:
        if not ctx.request.requester_email:
            return
        subject, body = decision_message(ctx.request, await self._leave_type_name(ctx))
        await self.notifier.send(
            [ctx.request.requester_email], subject, body, type=NotificationType.approval,
        )
        updated = await self.requests.update(ctx.request.id, {"notifications_sent": True})
        if updated is not None:
            ctx.request = updated

    async def _notify_cancellation(self, ctx: TransitionContext) -> None:
        if not ctx.request.manager_email:
            return
        subject, body = cancellation_message(
            ctx.request, await self._leave_type_name(ctx), ctx.reason,
        )
        await self.notifier.send(
            [ctx.request.manager_email], subject, body, type=NotificationType.alert,
        )

    async def _leave_type_name(self, ctx: TransitionContext) -> str:
        if ctx.leave_type is None:
            ctx.leave_type = await self.leave_types.get_by_id(ctx.request.leave_type_id)
        return ctx.leave_type.name if ctx.leave_type else "Leave"

    @staticmethod
    def calendar_event_details(request: LeaveRequestOut, leave_type_name: str) -> CalendarEventDetails:
        lines = [
            f"{CALENDAR_EVENT_CATEGORY}: {leave_type_name}",
            f"Dates: {request.start_date.strftime(DATE_FORMAT)} to {request.end_date.strftime(DATE_FORMAT)}",
        ]
        if request.is_partial_day and request.partial_day_hours:
            lines.append(f"Partial day: {request.partial_day_hours} hours")
        if request.comments:
            lines.append(f"Comments: {request.comments}")
        return CalendarEventDetails(
            subject=f"{leave_type_name} - Out of Office",
            leave_type_name=leave_type_name,
            start_date=request.start_date,
            end_date=request.end_date,
            is_all_day=not request.is_partial_day,
            partial_day_hours=request.partial_day_hours,
            body="\n".join(lines),
            attendee_email=request.requester_email,
        )

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    async def get(self, request_id: uuid.UUID) -> LeaveRequestOut:
        request = await self.requests.get_by_id(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)
        return request

    async def list_for_requester(
        self,
        requester_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        rows = await self.requests.list_by_requester(requester_id)
        return sorted(
            (r for r in rows if status is None or r.status == status),
            key=lambda r: r.submission_date,
            reverse=True,
        )

    async def list_pending(self, *, manager_id: Optional[uuid.UUID] = None) -> list[LeaveRequestOut]:
        """Pending requests awaiting a decision, oldest first."""
        rows = await self.requests.list_all()
        return sorted(
            (
                r for r in rows
                if r.status == LeaveStatus.pending
                and (manager_id is None or r.manager_id == manager_id)
            ),
            key=lambda r: r.submission_date,
        )

    async def team_calendar(
        self,
        start: date,
        end: date,
        *,
        requester_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> list[LeaveCalendarEntry]:
        """Approved and pending leave intersecting ``[start, end]``, each
        entry labelled and coloured by its leave type."""
        wanted = set(requester_ids) if requester_ids is not None else None
        rows = await self.requests.list_all()
        types = {lt.id: lt for lt in await self.leave_types.list_types()}
        entries = []
        for r in rows:
            if r.status not in (LeaveStatus.approved, LeaveStatus.pending):
                continue
            if wanted is not None and r.requester_id not in wanted:
                continue
            if not spans_overlap(start, end, r.start_date, r.end_date):
                continue
            leave_type = types.get(r.leave_type_id)
            entries.append(
                LeaveCalendarEntry(
                    request_id=r.id,
                    requester_id=r.requester_id,
                    leave_type_id=r.leave_type_id,
                    start_date=r.start_date,
                    end_date=r.end_date,
                    total_days=r.total_days,
                    status=r.status,
                    leave_type_name=leave_type.name if leave_type else None,
                    color=LeaveTypePolicy.display_color(leave_type) if leave_type else None,
                )
            )
        return sorted(entries, key=lambda e: (e.start_date, e.end_date))

    async def dashboard(self, requester_id: Optional[uuid.UUID] = None) -> RequestSummary:
        """Status counts and day totals, for one requester or everyone."""
        if requester_id is not None:
            rows = await self.requests.list_by_requester(requester_id)
        else:
            rows = await self.requests.list_all()

        summary = RequestSummary(total_requests=len(rows))
        for r in rows:
            if r.status == LeaveStatus.pending:
                summary.pending_requests += 1
            elif r.status == LeaveStatus.approved:
                summary.approved_requests += 1
                summary.total_days_approved += r.total_days
            elif r.status == LeaveStatus.rejected:
                summary.rejected_requests += 1
            elif r.status == LeaveStatus.cancelled:
                summary.cancelled_requests += 1
            summary.total_days_requested += Decimal(r.total_days)
        return summary

    async def balance_summary(
        self,
        employee_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> BalanceSummary:
        balances = await self.balances.list_for_employee(employee_id)
        return self.ledger.summarise(employee_id, balances, today)

    async def leave_types_available(self) -> list[LeaveTypeOut]:
        return LeaveTypePolicy.active_types(await self.leave_types.list_types())
