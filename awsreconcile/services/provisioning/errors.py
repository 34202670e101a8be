"""Reconciler error taxonomy and the not-found status sentinel."""

from typing import Any, Optional

# Status reported by refresh functions once the remote object is gone
STATUS_NOT_FOUND = 'destroyed'


class ReconcilerException(Exception):
    """
    Base exception for reconciler errors.

    Attributes:
        message: Error message
        resource_type: Resource type where error occurred
        resource_id: Resource identity if applicable
        status: Last observed remote status if applicable
        original_error: Original vendor exception if wrapped
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        status: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.status = status
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.resource_type:
            parts.append(f"Resource type: {self.resource_type}")
        if self.resource_id:
            parts.append(f"Resource: {self.resource_id}")
        if self.status:
            parts.append(f"Last status: {self.status}")
        if self.original_error:
            parts.append(f"Original error: {str(self.original_error)}")
        return " | ".join(parts)


class FatalRequestError(ReconcilerException):
    """Request rejected for a reason retrying cannot fix (invalid input, access denied)."""


class TransientRequestError(ReconcilerException):
    """Request failed for a reason expected to clear up (propagation delay, throttling)."""


class StatusMissingError(ReconcilerException):
    """Remote object exists but its response carries no status."""


class UnexpectedStatusError(ReconcilerException):
    """
    Remote object entered a status outside the pending and target sets.

    Attributes:
        reason: Vendor supplied reason code and message, if any
    """

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs: Any):
        self.reason = reason
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, **kwargs)


class WaitTimeoutError(ReconcilerException):
    """
    Wait budget exhausted before a target status was reached.

    Attributes:
        timeout: Wait budget in seconds
        reason: Last vendor supplied reason, if any
    """

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ):
        self.timeout = timeout
        self.reason = reason
        if reason:
            message = f"{message} (last reason: {reason})"
        super().__init__(message, **kwargs)


class ReconcileCancelledError(ReconcilerException):
    """Reconciliation stopped because the cancel event was set."""


class ReconcilerConfigError(ReconcilerException):
    """Reconciler could not be built from the given configuration."""
