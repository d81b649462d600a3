"""leaveflow — leave-request validation and approval workflow engine."""

__version__ = "1.0.0"
