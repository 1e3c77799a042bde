"""
Expense Tracker - Error Types

PURPOSE: Typed errors raised by managers and adapters
SCOPE: Error taxonomy and the HTTP status each maps to
DEPENDENCIES: None
"""


class ExpenseTrackerError(Exception):
    """Base class for errors surfaced to API clients."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExpenseTrackerError):
    status_code = 400


class AuthenticationError(ExpenseTrackerError):
    status_code = 401


class InvalidResetTokenError(ExpenseTrackerError):
    """Unknown or expired password-reset token."""
    status_code = 400


class PermissionDeniedError(ExpenseTrackerError):
    status_code = 403


class NotFoundError(ExpenseTrackerError):
    status_code = 404


class AIServiceError(ExpenseTrackerError):
    """The external model call failed."""
    status_code = 502


class ModelResponseError(AIServiceError):
    """The external model answered with content that is not the expected JSON."""
