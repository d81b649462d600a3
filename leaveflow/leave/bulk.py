"""Bulk submit / approve — batch-level validation, then sequential per-item runs.

A failing item never aborts the batch; each item's outcome is collected in
a BulkItemResult at its input index.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from leaveflow.common.exceptions import AppException
from leaveflow.config import settings
from leaveflow.leave.schemas import (
    BulkItemResult,
    BulkResult,
    ConflictContext,
    LeaveRequestCreate,
    ValidationVerdict,
)
from leaveflow.leave.workflow import ApprovalWorkflow

logger = logging.getLogger(__name__)


def find_duplicates(requests: Sequence[LeaveRequestCreate]) -> list[int]:
    """Indices of requests repeating an earlier one's leave type and dates."""
    duplicates: set[int] = set()
    for i, first in enumerate(requests):
        for j in range(i + 1, len(requests)):
            second = requests[j]
            if (
                first.leave_type_id == second.leave_type_id
                and first.start_date == second.start_date
                and first.end_date == second.end_date
            ):
                duplicates.add(j)
    return sorted(duplicates)


class BulkOperationCoordinator:
    def __init__(self, workflow: ApprovalWorkflow, *, max_size: Optional[int] = None) -> None:
        self.workflow = workflow
        self.max_size = max_size if max_size is not None else settings.BULK_MAX_SIZE

    @staticmethod
    def validate_batch(
        requests: Sequence[LeaveRequestCreate],
        max_size: Optional[int] = None,
    ) -> ValidationVerdict:
        max_size = max_size if max_size is not None else settings.BULK_MAX_SIZE
        verdict = ValidationVerdict()
        if not requests:
            verdict.errors.append("No requests provided for bulk operation")
        if len(requests) > max_size:
            verdict.errors.append(
                f"Bulk operation limited to {max_size} requests. Provided: {len(requests)}"
            )
        duplicates = find_duplicates(requests)
        if duplicates:
            verdict.warnings.append(
                f"Found {len(duplicates)} potential duplicate requests "
                f"(positions {', '.join(str(i) for i in duplicates)})"
            )
        return verdict

    async def submit_many(
        self,
        payloads: Sequence[LeaveRequestCreate],
        *,
        conflict_context: Optional[ConflictContext] = None,
    ) -> BulkResult:
        verdict = self.validate_batch(payloads, self.max_size)
        if not verdict.is_valid:
            return BulkResult(verdict=verdict)

        items: list[BulkItemResult] = []
        for index, payload in enumerate(payloads):
            try:
                outcome = await self.workflow.submit(payload, conflict_context=conflict_context)
            except AppException as exc:
                logger.warning("Bulk submit item %d failed: %s", index, exc.detail)
                items.append(BulkItemResult(index=index, ok=False, error=exc.detail))
                continue

            if outcome.request is None:
                items.append(
                    BulkItemResult(
                        index=index,
                        ok=False,
                        error="; ".join(outcome.verdict.errors),
                        detail={"warnings": outcome.verdict.warnings},
                    )
                )
            else:
                items.append(
                    BulkItemResult(
                        index=index,
                        request_id=outcome.request.id,
                        ok=True,
                        detail={
                            "status": outcome.request.status.value,
                            "warnings": outcome.verdict.warnings,
                            "skipped_effects": outcome.skipped_effects,
                        },
                    )
                )

        result = BulkResult(verdict=verdict, items=items)
        logger.info("Bulk submit: %d succeeded, %d failed", result.succeeded, result.failed)
        return result

    async def approve_many(
        self,
        request_ids: Sequence[uuid.UUID],
        *,
        comment: Optional[str] = None,
        approver_id: Optional[uuid.UUID] = None,
    ) -> BulkResult:
        verdict = ValidationVerdict()
        if not request_ids:
            verdict.errors.append("No requests provided for bulk operation")
        if len(request_ids) > self.max_size:
            verdict.errors.append(
                f"Bulk operation limited to {self.max_size} requests. Provided: {len(request_ids)}"
            )
        if not verdict.is_valid:
            return BulkResult(verdict=verdict)

        items: list[BulkItemResult] = []
        for index, request_id in enumerate(request_ids):
            try:
                outcome = await self.workflow.approve(
                    request_id, approver_id=approver_id, comment=comment,
                )
            except AppException as exc:
                logger.warning("Bulk approve of %s failed: %s", request_id, exc.detail)
                items.append(
                    BulkItemResult(
                        index=index,
                        request_id=request_id,
                        ok=False,
                        error=exc.detail,
                        detail={"type": exc.error_type},
                    )
                )
                continue
            items.append(
                BulkItemResult(
                    index=index,
                    request_id=request_id,
                    ok=True,
                    detail={"skipped_effects": outcome.skipped_effects},
                )
            )

        result = BulkResult(verdict=verdict, items=items)
        logger.info("Bulk approve: %d succeeded, %d failed", result.succeeded, result.failed)
        return result
