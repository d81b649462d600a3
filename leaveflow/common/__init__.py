"""Common module — shared utilities for leaveflow."""

from leaveflow.common.constants import (
    ACTIVE_STATUSES,
    DATE_FORMAT,
    ConflictSeverity,
    ConflictType,
    EffectKind,
    LeaveStatus,
    NotificationType,
    WorkflowAction,
)
from leaveflow.common.exceptions import (
    AppException,
    ConcurrencyConflict,
    DependencyFailure,
    InvalidTransition,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leaveflow.common.locks import KeyedLock

__all__ = [
    # Constants / Enums
    "ACTIVE_STATUSES",
    "DATE_FORMAT",
    "ConflictSeverity",
    "ConflictType",
    "EffectKind",
    "LeaveStatus",
    "NotificationType",
    "WorkflowAction",
    # Exceptions
    "AppException",
    "ConcurrencyConflict",
    "DependencyFailure",
    "InvalidTransition",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Concurrency
    "KeyedLock",
]
