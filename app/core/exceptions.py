"""Typed failures raised by the earnings engine.

Four families matter to callers: ValidationError (bad input, never retry),
ConflictError (an invariant would break; StaleWriteError is the only
retryable one), NotFoundError and IntegrityError (stored data is already
inconsistent). StoreUnavailable wraps persistence timeouts and is retryable.
"""
from typing import Optional


class EngineError(Exception):
    status_code = 500
    code = "engine_error"
    retryable = False

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.__class__.__doc__ or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }


# Validation

class ValidationError(EngineError):
    """Invalid input."""
    status_code = 400
    code = "validation_error"


class InvalidQuantity(ValidationError):
    """Quantity must be a whole number greater than 0."""
    code = "invalid_quantity"


class InvalidPrice(ValidationError):
    """Unit price must be greater than 0."""
    code = "invalid_price"


class InvalidAmount(ValidationError):
    """Amount must be greater than 0."""
    code = "invalid_amount"


class NoEarningsComputed(ValidationError):
    """No earnings calculated for a job that has services."""
    code = "no_earnings_computed"


class AdvanceNotAllowed(ValidationError):
    """Advance payment request is not allowed."""
    code = "advance_not_allowed"


# Conflicts

class ConflictError(EngineError):
    """The operation would violate a ledger invariant."""
    status_code = 409
    code = "conflict"


class InsufficientCustody(ConflictError):
    """Not enough of the item left in the worker's custody."""
    code = "insufficient_custody"


class OverReturn(ConflictError):
    """Returned plus consumed quantity would exceed the assigned quantity."""
    code = "over_return"


class InsufficientNetEarnings(ConflictError):
    """Requested amount exceeds earnings net of deductions."""
    code = "insufficient_net_earnings"


class DuplicatePendingRequest(ConflictError):
    """Worker already has a pending payment request."""
    code = "duplicate_pending_request"


class InvalidTransition(ConflictError):
    """Payment request cannot move to the requested status."""
    code = "invalid_transition"


class CannotCancelProcessedRequest(ConflictError):
    """Only pending payment requests can be cancelled."""
    code = "cannot_cancel_processed_request"


class StaleWriteError(ConflictError):
    """Record was modified concurrently, retry the operation."""
    code = "stale_write"
    retryable = True


# Lookups

class NotFoundError(EngineError):
    """Referenced entity does not exist."""
    status_code = 404
    code = "not_found"


class CustodyRecordNotFound(NotFoundError):
    """Custody record not found."""
    code = "custody_record_not_found"


class JobNotFound(NotFoundError):
    """Completed check-in not found."""
    code = "job_not_found"


class PaymentRequestNotFound(NotFoundError):
    """Payment request not found."""
    code = "payment_request_not_found"


class PermissionDenied(EngineError):
    """User is not allowed to perform this action."""
    status_code = 403
    code = "permission_denied"


# Stored data / infrastructure

class IntegrityError(EngineError):
    """Stored data violates a ledger invariant."""
    status_code = 500
    code = "integrity_error"


class CustodyIntegrityError(IntegrityError):
    """Custody record quantities are inconsistent with its consumption records."""
    code = "custody_integrity_error"


class StoreUnavailable(EngineError):
    """Database did not answer in time, retry the operation."""
    status_code = 503
    code = "store_unavailable"
    retryable = True
